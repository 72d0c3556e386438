"""Affiliate program for QuickLeads.

Flat-rate referral commissions:
- Affiliates share a /ref/CODE link
- New users who register through it are tagged with referred_by
- Every completed purchase by a referred user earns the affiliate 15%
- Admins pay out pending commissions in monthly bills
"""

from quickleads.affiliate.commissions import (
    COMMISSION_RATE,
    CommissionService,
    MonthlyBill,
    calculate_commission,
    commission_service,
    group_monthly_bills,
)
from quickleads.affiliate.service import AffiliateService, affiliate_service

__all__ = [
    "COMMISSION_RATE",
    "AffiliateService",
    "CommissionService",
    "MonthlyBill",
    "affiliate_service",
    "calculate_commission",
    "commission_service",
    "group_monthly_bills",
]
