"""QuickLeads - lead export storefront with credits and affiliate payouts."""

__version__ = "1.0.0"
