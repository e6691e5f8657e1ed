"""
REST API endpoints for affiliates (jyotishis) and admins.

Identity comes from request['caller'] (see app.middlewares.caller); ledger
exceptions are turned into JSON errors by app.middlewares.errors.
"""

import json
import logging
from typing import Optional, Type, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError as PydanticValidationError

from core.context import CallerContext
from core.dto import (
    AccrueCommissionDTO,
    BulkSettleDTO,
    CancelCommissionDTO,
    CouponPreviewDTO,
    CreateCouponDTO,
    CreateCouponTypeDTO,
    GenerateAffiliateCodeDTO,
    PayoutRequestDTO,
    RejectPayoutDTO,
    SettlePayoutDTO,
)
from core.exceptions import ValidationError
from database.models import Commission, Coupon, CouponType, Payout, PayoutStatus
from app.utils.formatters import isoformat, money_str
from services.code_generators import CodeService
from services.commission_accrual import CommissionAccrualService
from services.payout_aggregator import PayoutAggregator
from services.payout_request import PayoutRequestService
from services.payout_settlement import PayoutSettlementService

logger = logging.getLogger(__name__)

DTO = TypeVar("DTO", bound=BaseModel)


def setup_routes(app: web.Application):
    """Setup all API routes."""
    # Health check
    app.router.add_get('/health', health_check)

    # Affiliate API
    app.router.add_get('/api/jyotishi/balance', get_my_balance)
    app.router.add_get('/api/jyotishi/earnings', get_my_earnings)
    app.router.add_get('/api/jyotishi/payouts', get_my_payouts)
    app.router.add_post('/api/jyotishi/payouts/request', request_payout)
    app.router.add_get('/api/jyotishi/coupon-types', get_coupon_types)
    app.router.add_get('/api/jyotishi/coupons', get_my_coupons)
    app.router.add_post('/api/jyotishi/coupons', create_coupon)
    app.router.add_post('/api/jyotishi/coupons/preview', preview_coupon)

    # Admin API - Commissions
    app.router.add_post('/api/admin/commissions/accrue', accrue_commission)
    app.router.add_get('/api/admin/commissions/pending', get_pending_commissions)
    app.router.add_get('/api/admin/commissions/stats', get_commission_stats)
    app.router.add_post('/api/admin/commissions/bulk-pay', bulk_pay)
    app.router.add_post('/api/admin/payments/{payment_id}/cancel-commission', cancel_commission)
    app.router.add_get('/api/admin/affiliates/{affiliate_id}/earnings', get_affiliate_earnings)

    # Admin API - Payouts
    app.router.add_get('/api/admin/payouts', list_payouts)
    app.router.add_get('/api/admin/payouts/{payout_id}', get_payout)
    app.router.add_get('/api/admin/payouts/{payout_id}/settlement-preview', preview_settlement)
    app.router.add_post('/api/admin/payouts/{payout_id}/approve', approve_payout)
    app.router.add_post('/api/admin/payouts/{payout_id}/settle', settle_payout)
    app.router.add_post('/api/admin/payouts/{payout_id}/reject', reject_payout)

    # Admin API - Codes
    app.router.add_post('/api/admin/jyotishi/generate-code', generate_affiliate_code)
    app.router.add_post('/api/admin/jyotishi/{user_id}/code', assign_affiliate_code)
    app.router.add_get('/api/admin/coupon-types/next-code', get_next_coupon_type_code)
    app.router.add_post('/api/admin/coupon-types', create_coupon_type)


# ========== Helpers ==========

async def parse_body(request: web.Request, dto_class: Type[DTO]) -> DTO:
    """Validate the JSON body against a DTO."""
    try:
        data = await request.json()
    except json.JSONDecodeError:
        raise ValidationError("body", "invalid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("body", "expected a JSON object")
    try:
        return dto_class.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(field, first.get("msg", "invalid value")) from None


def path_int(request: web.Request, name: str) -> int:
    try:
        return int(request.match_info[name])
    except (KeyError, ValueError):
        raise ValidationError(name, "must be an integer") from None


def query_int(request: web.Request, name: str) -> Optional[int]:
    raw = request.query.get(name)
    if raw in (None, ""):
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(name, "must be an integer") from None
    if value <= 0:
        raise ValidationError(name, "must be positive")
    return value


def caller_of(request: web.Request) -> CallerContext:
    return request['caller']


def payout_to_dict(payout: Payout) -> dict:
    return {
        "id": payout.id,
        "affiliate_id": payout.affiliate_id,
        "amount": money_str(payout.amount),
        "requested_amount": money_str(payout.requested_amount),
        "status": payout.status,
        "payment_method": payout.payment_method,
        "transaction_id": payout.transaction_id,
        "transaction_proof": payout.transaction_proof,
        "bank_details": payout.bank_details,
        "notes": payout.notes,
        "rejection_reason": payout.rejection_reason,
        "requested_at": isoformat(payout.requested_at),
        "approved_at": isoformat(payout.approved_at),
        "processed_at": isoformat(payout.processed_at),
        "processed_by": payout.processed_by,
    }


def commission_to_dict(commission: Commission) -> dict:
    return {
        "id": commission.id,
        "affiliate_id": commission.affiliate_id,
        "payment_id": commission.payment_id,
        "student_id": commission.student_id,
        "course_id": commission.course_id,
        "sale_amount": money_str(commission.sale_amount),
        "commission_rate": str(commission.commission_rate),
        "commission_amount": money_str(commission.commission_amount),
        "status": commission.status,
        "payout_id": commission.payout_id,
        "paid_at": isoformat(commission.paid_at),
        "created_at": isoformat(commission.created_at),
    }


def coupon_type_to_dict(coupon_type: CouponType) -> dict:
    return {
        "id": coupon_type.id,
        "type_code": coupon_type.type_code,
        "type_name": coupon_type.type_name,
        "description": coupon_type.description,
        "discount_type": coupon_type.discount_type,
        "max_discount_limit": money_str(coupon_type.max_discount_limit),
        "is_active": coupon_type.is_active,
    }


def coupon_to_dict(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "coupon_type_id": coupon.coupon_type_id,
        "discount_type": coupon.discount_type,
        "discount_value": money_str(coupon.discount_value),
        "max_usage_count": coupon.max_usage_count,
        "current_usage_count": coupon.current_usage_count,
        "valid_until": isoformat(coupon.valid_until),
        "is_active": coupon.is_active,
    }


def settlement_service(request: web.Request, session) -> PayoutSettlementService:
    return PayoutSettlementService(session, notifier=request.app.get('notifier'))


# ========== Health ==========

async def health_check(request: web.Request):
    """Health check endpoint."""
    return web.json_response({"status": "ok"})


# ========== Affiliate API ==========

async def get_my_balance(request: web.Request):
    caller = caller_of(request)
    async with request.app['session_maker']() as session:
        balance = await PayoutRequestService(session).get_balance(caller)
    return web.json_response({key: money_str(value) for key, value in balance.items()})


async def get_my_earnings(request: web.Request):
    caller = caller_of(request)
    async with request.app['session_maker']() as session:
        earnings = await PayoutAggregator(session).affiliate_earnings(caller.actor_id)
    return web.json_response(earnings_to_dict(earnings))


def earnings_to_dict(earnings: dict) -> dict:
    money_keys = ('total_earned', 'pending', 'paid', 'cancelled', 'reserved', 'available')
    return {
        key: money_str(value) if key in money_keys else value
        for key, value in earnings.items()
    }


async def get_my_payouts(request: web.Request):
    caller = caller_of(request)
    limit = query_int(request, 'limit')
    async with request.app['session_maker']() as session:
        payouts = await PayoutRequestService(session).list_my_payouts(caller, limit)
    return web.json_response([payout_to_dict(p) for p in payouts])


async def request_payout(request: web.Request):
    """Affiliate asks for part of their pending balance."""
    caller = caller_of(request)
    data = await parse_body(request, PayoutRequestDTO)
    async with request.app['session_maker']() as session:
        payout = await PayoutRequestService(session).request_payout(
            caller,
            data.amount,
            payment_method=data.payment_method,
            notes=data.notes
        )
    return web.json_response(payout_to_dict(payout), status=201)


async def get_coupon_types(request: web.Request):
    async with request.app['session_maker']() as session:
        coupon_types = await CodeService(session).list_coupon_types()
    return web.json_response([coupon_type_to_dict(ct) for ct in coupon_types])


async def get_my_coupons(request: web.Request):
    caller = caller_of(request)
    async with request.app['session_maker']() as session:
        coupons = await CodeService(session).list_affiliate_coupons(caller.actor_id)
    return web.json_response([coupon_to_dict(c) for c in coupons])


async def preview_coupon(request: web.Request):
    caller = caller_of(request)
    data = await parse_body(request, CouponPreviewDTO)
    async with request.app['session_maker']() as session:
        preview = await CodeService(session).preview_coupon(
            caller.actor_id, data.coupon_type_id, data.discount_value
        )
    return web.json_response({
        "coupon_code": preview['coupon_code'],
        "exists": preview['exists'],
        "coupon_type": coupon_type_to_dict(preview['coupon_type']),
        "discount_value": money_str(preview['discount_value']),
    })


async def create_coupon(request: web.Request):
    caller = caller_of(request)
    data = await parse_body(request, CreateCouponDTO)
    async with request.app['session_maker']() as session:
        coupon = await CodeService(session).create_coupon(
            caller,
            data.coupon_type_id,
            data.discount_value,
            max_usage_count=data.max_usage_count,
            valid_until=data.valid_until,
            description=data.description
        )
    return web.json_response(coupon_to_dict(coupon), status=201)


# ========== Admin API - Commissions ==========

async def accrue_commission(request: web.Request):
    """Record the commission for a completed payment."""
    data = await parse_body(request, AccrueCommissionDTO)
    async with request.app['session_maker']() as session:
        service = CommissionAccrualService(session)
        if data.affiliate_id is None:
            commission = await service.accrue_for_payment(data.payment_id)
        else:
            commission = await service.accrue_commission(
                data.payment_id,
                data.affiliate_id,
                sale_amount=data.sale_amount,
                rate=data.rate
            )
    return web.json_response(commission_to_dict(commission), status=201)


async def cancel_commission(request: web.Request):
    payment_id = path_int(request, 'payment_id')
    data = await parse_body(request, CancelCommissionDTO)
    async with request.app['session_maker']() as session:
        commission = await CommissionAccrualService(session).cancel_commission(payment_id, data.reason)
    return web.json_response(commission_to_dict(commission))


async def get_pending_commissions(request: web.Request):
    """Pending balance per affiliate, largest first."""
    limit = query_int(request, 'limit')
    async with request.app['session_maker']() as session:
        rows = await PayoutAggregator(session).pending_balance_by_affiliate(limit)
    return web.json_response([
        {**row, "pending_amount": money_str(row['pending_amount'])}
        for row in rows
    ])


async def get_commission_stats(request: web.Request):
    async with request.app['session_maker']() as session:
        stats = await PayoutAggregator(session).commission_stats()

    money_keys = ('total_commission', 'pending_commission', 'paid_commission', 'cancelled_commission')
    body = {key: money_str(value) if key in money_keys else value for key, value in stats.items()}
    body['top_affiliates'] = [
        {**row, "total_commission": money_str(row['total_commission'])}
        for row in stats['top_affiliates']
    ]
    return web.json_response(body)


async def get_affiliate_earnings(request: web.Request):
    affiliate_id = path_int(request, 'affiliate_id')
    async with request.app['session_maker']() as session:
        earnings = await PayoutAggregator(session).affiliate_earnings(affiliate_id)
    return web.json_response(earnings_to_dict(earnings))


async def bulk_pay(request: web.Request):
    """Pay out everything pending for one affiliate."""
    caller = caller_of(request)
    data = await parse_body(request, BulkSettleDTO)
    async with request.app['session_maker']() as session:
        payout = await settlement_service(request, session).bulk_settle(
            caller,
            data.affiliate_id,
            data.transaction_id,
            transaction_proof=data.transaction_proof,
            notes=data.notes
        )
    return web.json_response(payout_to_dict(payout), status=201)


# ========== Admin API - Payouts ==========

async def list_payouts(request: web.Request):
    raw_status = (request.query.get('status') or '').upper()
    try:
        status = PayoutStatus(raw_status) if raw_status else None
    except ValueError:
        raise ValidationError('status', f"must be one of {', '.join(s.value for s in PayoutStatus)}") from None
    limit = query_int(request, 'limit')

    async with request.app['session_maker']() as session:
        payouts = await settlement_service(request, session).list_payouts(status, limit)
    return web.json_response([payout_to_dict(p) for p in payouts])


async def get_payout(request: web.Request):
    payout_id = path_int(request, 'payout_id')
    async with request.app['session_maker']() as session:
        payout, commissions = await settlement_service(request, session).get_payout_detail(payout_id)
    body = payout_to_dict(payout)
    body['commissions'] = [commission_to_dict(c) for c in commissions]
    return web.json_response(body)


async def preview_settlement(request: web.Request):
    """What settling this payout would bind, without writing."""
    payout_id = path_int(request, 'payout_id')
    async with request.app['session_maker']() as session:
        preview = await settlement_service(request, session).preview_settlement(payout_id)

    money_keys = ('requested_amount', 'settle_amount', 'excess', 'pending_total',
                  'reserved_by_other_requests', 'remaining_pending')
    body = {key: money_str(value) if key in money_keys else value for key, value in preview.items()}
    body['commissions'] = [commission_to_dict(c) for c in preview['commissions']]
    return web.json_response(body)


async def approve_payout(request: web.Request):
    caller = caller_of(request)
    payout_id = path_int(request, 'payout_id')
    async with request.app['session_maker']() as session:
        payout = await settlement_service(request, session).approve_payout(caller, payout_id)
    return web.json_response(payout_to_dict(payout))


async def settle_payout(request: web.Request):
    caller = caller_of(request)
    payout_id = path_int(request, 'payout_id')
    data = await parse_body(request, SettlePayoutDTO)
    async with request.app['session_maker']() as session:
        payout = await settlement_service(request, session).settle_requested_payout(
            caller,
            payout_id,
            data.transaction_id,
            transaction_proof=data.transaction_proof,
            notes=data.notes
        )
    return web.json_response(payout_to_dict(payout))


async def reject_payout(request: web.Request):
    caller = caller_of(request)
    payout_id = path_int(request, 'payout_id')
    data = await parse_body(request, RejectPayoutDTO)
    async with request.app['session_maker']() as session:
        payout = await settlement_service(request, session).reject_payout(caller, payout_id, data.reason)
    return web.json_response(payout_to_dict(payout))


# ========== Admin API - Codes ==========

async def generate_affiliate_code(request: web.Request):
    """Preview the next affiliate code for a name."""
    data = await parse_body(request, GenerateAffiliateCodeDTO)
    async with request.app['session_maker']() as session:
        code = await CodeService(session).generate_affiliate_code(data.name)
    return web.json_response({"code": code})


async def assign_affiliate_code(request: web.Request):
    user_id = path_int(request, 'user_id')
    async with request.app['session_maker']() as session:
        user = await CodeService(session).assign_affiliate_code(user_id)
    return web.json_response({"user_id": user.id, "code": user.affiliate_code})


async def get_next_coupon_type_code(request: web.Request):
    async with request.app['session_maker']() as session:
        code = await CodeService(session).next_coupon_type_code()
    return web.json_response({"type_code": code})


async def create_coupon_type(request: web.Request):
    caller = caller_of(request)
    data = await parse_body(request, CreateCouponTypeDTO)
    async with request.app['session_maker']() as session:
        coupon_type = await CodeService(session).create_coupon_type(
            caller,
            data.type_name,
            data.discount_type,
            data.max_discount_limit,
            description=data.description
        )
    return web.json_response(coupon_type_to_dict(coupon_type), status=201)
