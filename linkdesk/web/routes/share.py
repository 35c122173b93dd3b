"""Public share-link routes. No session required; rate limited per IP."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from linkdesk.config import get_config
from linkdesk.db.connection import get_session
from linkdesk.models import UserType
from linkdesk.services import share_links
from linkdesk.web.auth import SESSION_COOKIE, create_session
from linkdesk.web.models import ClaimSignupRequest
from linkdesk.web.rate_limit import get_client_identifier, share_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/orders/claim",
    tags=["share"],
    dependencies=[Depends(share_rate_limiter)],
)


@router.get("/{token}")
async def claim_view(token: str, request: Request):
    """Order, line items and candidate domains for a share token."""
    async with get_session() as session:
        return await share_links.get_claim_view(
            session, token, ip=get_client_identifier(request)
        )


@router.post("/{token}/signup")
async def claim_signup(token: str, body: ClaimSignupRequest, response: Response):
    """Create an account from the share link and take ownership of the order."""
    async with get_session() as session:
        account = await share_links.signup_and_claim(
            session,
            token,
            email=body.email,
            password=body.password,
            contact_name=body.contact_name,
            company_name=body.company_name,
            phone=body.phone,
        )
        account_id, email, role = account.id, account.email, account.role

    session_token = create_session(account_id, UserType.ACCOUNT, email=email, role=role)
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_token,
        httponly=True,
        samesite="lax",
        secure=get_config().environment == "production",
        max_age=get_config().auth.session_expiry_hours * 3600,
    )
    return {"success": True, "accountId": str(account_id), "email": email}
