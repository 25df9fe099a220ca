"""Transactional email through Resend."""
from __future__ import annotations

import html
import logging
from typing import Any, Optional

import resend
from starlette.concurrency import run_in_threadpool

from .config import settings

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None):
        self.api_key = (api_key if api_key is not None else settings.RESEND_API_KEY or "").strip()
        self.sender = sender or settings.MAIL_FROM

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _send(self, payload: dict[str, Any]) -> bool:
        resend.api_key = self.api_key
        response = resend.Emails.send(payload)
        if not isinstance(response, dict) or not response.get("id"):
            logger.warning("Resend returned no message id: %r", response)
            return False
        return True

    async def send(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        """Send one email. Returns False (never raises) when it could not be sent."""
        if not self.enabled:
            logger.info("Mail disabled, not sending %r to %s", subject, to)
            return False
        payload: dict[str, Any] = {"from": self.sender, "to": [to], "subject": subject, "html": html_body}
        if text_body:
            payload["text"] = text_body
        try:
            return await run_in_threadpool(self._send, payload)
        except Exception:
            logger.exception("Sending %r to %s failed", subject, to)
            return False

    async def send_welcome(self, name: str, email: str) -> bool:
        safe = html.escape(name)
        body = f"""<div style="font-family:Arial,sans-serif;max-width:560px;margin:auto">
  <h2>Welcome, {safe}!</h2>
  <p>Thanks for creating an account. Start exploring our products and exclusive deals.</p>
  <p><a href="{settings.FRONTEND_URL}">Visit the store</a></p>
</div>"""
        return await self.send(email, "Welcome to our store", body, f"Welcome, {name}! Thanks for joining us.")

    async def send_purchase_order(self, po: dict[str, Any], company: Optional[dict[str, Any]] = None) -> bool:
        supplier = po.get("supplier_info") or {}
        to = supplier.get("supplier_email")
        if not to:
            logger.info("PO %s has no supplier email", po.get("po_id"))
            return False
        company_name = (company or {}).get("company_name") or settings.APP_NAME
        return await self.send(
            to,
            f"Purchase Order {po['po_id']} from {company_name}",
            render_purchase_order(po, company_name),
        )


def render_purchase_order(po: dict[str, Any], company_name: str) -> str:
    symbol = po.get("currency_symbol") or "₹"
    rows = "".join(
        "<tr>"
        f"<td>{html.escape(str(item.get('product_name', '')))}</td>"
        f"<td>{html.escape(str(item.get('sku') or ''))}</td>"
        f"<td style='text-align:right'>{item.get('quantity', 0):g} {html.escape(str(item.get('uom') or ''))}</td>"
        f"<td style='text-align:right'>{symbol}{item.get('price', 0):.2f}</td>"
        f"<td style='text-align:right'>{item.get('gst_percentage', 0):g}%</td>"
        f"<td style='text-align:right'>{symbol}{item.get('total_price', 0):.2f}</td>"
        "</tr>"
        for item in po.get("items", [])
    )
    supplier = po.get("supplier_info") or {}
    po_date = po.get("po_date")
    po_date = po_date.strftime("%d %b %Y") if hasattr(po_date, "strftime") else (po_date or "")
    return f"""<div style="font-family:Arial,sans-serif;max-width:720px;margin:auto">
  <h2>{html.escape(company_name)}: Purchase Order {html.escape(po['po_id'])}</h2>
  <p>Dear {html.escape(supplier.get('contact_person_name') or supplier.get('supplier_name') or 'Supplier')},</p>
  <p>Please find our purchase order dated {po_date} below.</p>
  <table width="100%" cellpadding="6" style="border-collapse:collapse" border="1">
    <tr><th>Item</th><th>SKU</th><th>Qty</th><th>Price</th><th>GST</th><th>Total</th></tr>
    {rows}
  </table>
  <p style="text-align:right">Sub total: {symbol}{po.get('sub_total', 0):.2f}<br/>
  GST: {symbol}{po.get('total_gst', 0):.2f}<br/>
  <strong>Grand total: {symbol}{po.get('grand_total', 0):.2f}</strong></p>
  {f"<p>Notes: {html.escape(po['po_notes'])}</p>" if po.get('po_notes') else ""}
</div>"""


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        _mailer = Mailer()
    return _mailer
