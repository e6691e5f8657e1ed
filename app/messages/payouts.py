"""Payout related messages for affiliates and admins."""
from dataclasses import dataclass
from typing import Dict, List

from app.utils.formatters import format_datetime, format_money


@dataclass(frozen=True)
class PayoutMessages:
    """Messages for payouts and commissions."""

    # Admin commands
    NO_PENDING = "✅ No pending commissions"
    BULK_PAY_USAGE = (
        "Usage: <code>/admin_bulk_pay &lt;affiliate_id&gt; &lt;transaction_id&gt;</code>\n\n"
        "Example: <code>/admin_bulk_pay 42 UTR123456789</code>"
    )
    INVALID_AFFILIATE_ID = "❌ Invalid affiliate ID"

    @staticmethod
    def payout_completed(payout_id: int, amount, transaction_id: str | None, processed_at=None) -> str:
        """Affiliate notification: money sent."""
        text = (
            f"🎉 <b>Payout #{payout_id} completed</b>\n\n"
            f"💰 Amount: <b>{format_money(amount)}</b>\n"
        )
        if processed_at:
            text += f"📅 Date: {format_datetime(processed_at)}\n"
        if transaction_id:
            text += f"🧾 Reference: <code>{transaction_id}</code>\n"
        text += "\nThank you for sharing your coupons!"
        return text

    @staticmethod
    def payout_rejected(payout_id: int, amount, reason: str) -> str:
        """Affiliate notification: request rejected."""
        return (
            f"❌ <b>Payout request #{payout_id} rejected</b>\n\n"
            f"💰 Amount: {format_money(amount)}\n"
            f"📝 Reason: {reason}\n\n"
            f"Your commissions remain pending and can be requested again."
        )

    @staticmethod
    def pending_overview(rows: List[Dict]) -> str:
        """Admin view of pending balances, largest first."""
        total = sum(row['pending_amount'] for row in rows)
        lines = [
            "💰 <b>Pending commissions</b>\n",
            f"Affiliates: {len(rows)}",
            f"Total: <b>{format_money(total)}</b>\n",
        ]
        for row in rows:
            code = row.get('affiliate_code') or '-'
            lines.append(
                f"👤 <b>{row.get('name') or 'Unknown'}</b> ({code}, ID <code>{row['affiliate_id']}</code>)\n"
                f"   {format_money(row['pending_amount'])} in {row['pending_count']} commission(s)"
            )
        lines.append("\n💡 Pay out: <code>/admin_bulk_pay &lt;affiliate_id&gt; &lt;transaction_id&gt;</code>")
        return "\n".join(lines)

    @staticmethod
    def stats(stats: Dict) -> str:
        """Admin view of programme-wide statistics."""
        payouts = stats['payouts_by_status']
        lines = [
            "📊 <b>Commission statistics</b>\n",
            f"Total earned: <b>{format_money(stats['total_commission'])}</b>",
            f"⏳ Pending: {format_money(stats['pending_commission'])} ({stats['pending_count']})",
            f"✅ Paid: {format_money(stats['paid_commission'])} ({stats['paid_count']})",
            f"🚫 Cancelled: {format_money(stats['cancelled_commission'])} ({stats['cancelled_count']})",
            f"🛒 Sales: {stats['total_sales']}\n",
            "<b>Payouts</b>",
            f"Pending: {payouts.get('PENDING', 0)} | Processing: {payouts.get('PROCESSING', 0)} | "
            f"Completed: {payouts.get('COMPLETED', 0)} | Rejected: {payouts.get('REJECTED', 0)}",
        ]
        if stats['top_affiliates']:
            lines.append("\n🏆 <b>Top affiliates</b>")
            for i, row in enumerate(stats['top_affiliates'], 1):
                lines.append(
                    f"{i}. {row.get('name') or 'Unknown'}: {format_money(row['total_commission'])} "
                    f"({row['total_sales']} sales)"
                )
        return "\n".join(lines)

    @staticmethod
    def bulk_paid(payout_id: int, affiliate_name: str, amount, commission_count: int) -> str:
        return (
            f"✅ <b>Payout #{payout_id} completed</b>\n\n"
            f"👤 {affiliate_name}\n"
            f"💰 {format_money(amount)} for {commission_count} commission(s)"
        )
