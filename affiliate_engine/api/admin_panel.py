"""
Простая веб-админка выплат и фрод-отчёта.
Без сложностей — HTML-очередь заявок и JSON-действия.
"""

from fastapi import APIRouter, Depends, Request, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import base64
import binascii
import html as html_lib
import secrets

from affiliate_engine.api.schemas import RejectPayoutRequest, payout_to_dict
from affiliate_engine.config import get_settings
from affiliate_engine.db.crud import list_payouts
from affiliate_engine.db.models import PayoutStatus
from affiliate_engine.db.session import get_session
from affiliate_engine.logger import log_api
from affiliate_engine.services.commission_calculator import format_cents
from affiliate_engine.services.errors import ValidationError
from affiliate_engine.services.payouts import (
    PayoutResult, approve_payout, mark_payout_paid, reject_payout,
)
from affiliate_engine.services.stats import build_fraud_report

router = APIRouter(prefix="/admin", tags=["admin"])
settings = get_settings()


def check_admin_auth(request: Request) -> bool:
    """Simple BasicAuth check"""
    auth = request.headers.get("Authorization")
    if not auth:
        return False

    try:
        scheme, credentials = auth.split()
        if scheme.lower() != "basic":
            return False

        decoded = base64.b64decode(credentials).decode()
        username, password = decoded.split(":", 1)
    except (ValueError, binascii.Error, UnicodeDecodeError):
        return False

    return (
        secrets.compare_digest(username.encode(), settings.admin_panel_user.encode())
        and secrets.compare_digest(password.encode(), settings.admin_panel_pass.encode())
    )


def require_admin(request: Request):
    if not check_admin_auth(request):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )


def _payout_response(result: PayoutResult) -> dict:
    if not result.success:
        if result.error == "payout not found":
            raise HTTPException(status_code=404, detail="Payout not found")
        return {"success": False, "error": result.error}
    return {"success": True, "payout": payout_to_dict(result.payout)}


@router.get("/payouts", response_class=HTMLResponse, dependencies=[Depends(require_admin)])
async def payouts_queue(
    status: Optional[str] = "PENDING",
    session: AsyncSession = Depends(get_session),
):
    """Очередь заявок на выплату"""
    payout_status = None
    if status and status.upper() != "ALL":
        try:
            payout_status = PayoutStatus(status.upper())
        except ValueError:
            raise ValidationError(f"Unknown payout status: {status}")

    payouts = await list_payouts(session, status=payout_status)

    html = f"""
    <html>
    <head>
        <title>Выплаты</title>
        <style>
            body {{ font-family: Arial; margin: 20px; }}
            table {{ border-collapse: collapse; width: 100%; }}
            th, td {{ border: 1px solid #ddd; padding: 10px; text-align: left; }}
            th {{ background-color: #f2f2f2; }}
            a {{ color: #0066cc; text-decoration: none; margin-right: 10px; }}
            .status-PENDING {{ color: orange; }}
            .status-APPROVED {{ color: #0066cc; }}
            .status-PAID {{ color: green; }}
            .status-REJECTED {{ color: red; }}
        </style>
    </head>
    <body>
        <h1>💸 Выплаты ({html_lib.escape(status or "ALL")})</h1>
        <p>
            <a href="/admin/payouts?status=PENDING">Ожидают</a>
            <a href="/admin/payouts?status=APPROVED">Одобрены</a>
            <a href="/admin/payouts?status=PAID">Выплачены</a>
            <a href="/admin/payouts?status=REJECTED">Отклонены</a>
            <a href="/admin/payouts?status=ALL">Все</a>
            <a href="/admin/fraud">🚨 Фрод-отчёт</a>
        </p>

        <table>
            <tr>
                <th>ID</th>
                <th>Партнёр</th>
                <th>Сумма</th>
                <th>Способ</th>
                <th>Статус</th>
                <th>Комментарий</th>
                <th>Создана</th>
                <th>Обработана</th>
            </tr>
    """

    for payout in payouts:
        processed = payout.processed_at.strftime('%d.%m.%Y %H:%M') if payout.processed_at else '—'
        comment = payout.reason or payout.notes or ''
        html += f"""
            <tr>
                <td>{payout.id}</td>
                <td>{payout.affiliate_id}</td>
                <td>{format_cents(payout.amount)}</td>
                <td>{payout.method.value}</td>
                <td class="status-{payout.status.value}"><strong>{payout.status.value}</strong></td>
                <td>{html_lib.escape(comment)}</td>
                <td>{payout.created_at.strftime('%d.%m.%Y %H:%M')}</td>
                <td>{processed}</td>
            </tr>
        """

    html += """
        </table>
    </body>
    </html>
    """

    return html


@router.post("/payouts/{payout_id}/approve", dependencies=[Depends(require_admin)])
async def approve(payout_id: int, session: AsyncSession = Depends(get_session)):
    result = await approve_payout(session, payout_id)
    log_api.info(f"Админ: approve payout_id={payout_id}, success={result.success}")
    return _payout_response(result)


@router.post("/payouts/{payout_id}/reject", dependencies=[Depends(require_admin)])
async def reject(
    payout_id: int,
    body: RejectPayoutRequest,
    session: AsyncSession = Depends(get_session),
):
    result = await reject_payout(session, payout_id, body.reason)
    log_api.info(f"Админ: reject payout_id={payout_id}, success={result.success}")
    return _payout_response(result)


@router.post("/payouts/{payout_id}/mark-paid", dependencies=[Depends(require_admin)])
async def mark_paid(payout_id: int, session: AsyncSession = Depends(get_session)):
    result = await mark_payout_paid(session, payout_id)
    log_api.info(f"Админ: mark-paid payout_id={payout_id}, success={result.success}")
    return _payout_response(result)


@router.get("/fraud", dependencies=[Depends(require_admin)])
async def fraud_report(
    affiliate_id: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
):
    """Подозрительные партнёры (JSON)"""
    flagged = await build_fraud_report(session, affiliate_id=affiliate_id)
    return {"count": len(flagged), "affiliates": flagged}
