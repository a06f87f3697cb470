"""Checkbox fiscal receipt client.

Registers sale receipts through the Checkbox cashier API:

1. Cashier sign-in (login + PIN, license key header) -> bearer token
2. Ensure a shift is open (open one and wait if needed)
3. POST /receipts/sell - sent exactly once, never retried

Failures in steps 1-2 happen before any receipt request and are definitive.
A transport failure during step 3 is ambiguous and is raised as
FiscalSubmissionAmbiguous.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp
from pydantic import ValidationError

from connectors.base import (
    FiscalCredentials,
    FiscalReceipt,
    FiscalReceiptRequest,
    FiscalReceiptSink,
    FiscalSubmissionAmbiguous,
)
from connectors.checkbox.cb_models import CBReceipt, CBShift, CBSignInResponse
from connectors.http_client import ApiHttpClient, RequestOutcomeUnknown, RetryConfig
from core.errors import UpstreamRejected, UpstreamUnavailable
from core.observability.logging import get_logger

logger = get_logger(__name__)

SOURCE = "checkbox"


class CheckboxClient(FiscalReceiptSink):
    """FiscalReceiptSink backed by the Checkbox cashier API."""

    name = SOURCE

    def __init__(
        self,
        base_url: str,
        receipt_view_url: str = "https://check.checkbox.ua",
        client_name: str = "payment-receipts",
        client_version: str = "1.0.0",
        timeout_seconds: int = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        shift_poll_attempts: int = 10,
        shift_poll_interval: float = 1.0,
    ):
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config
        self._session = session
        self.receipt_view_url = receipt_view_url.rstrip("/")
        self.client_name = client_name
        self.client_version = client_version
        self.shift_poll_attempts = shift_poll_attempts
        self.shift_poll_interval = shift_poll_interval

    def _new_http(self) -> ApiHttpClient:
        return ApiHttpClient(
            SOURCE,
            self.base_url,
            timeout_seconds=self.timeout_seconds,
            retry_config=self.retry_config,
            session=self._session,
        )

    def _headers(self, license_key: str, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "X-Client-Name": self.client_name,
            "X-Client-Version": self.client_version,
            "X-License-Key": license_key,
            "Accept": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def sign_in(self, http: ApiHttpClient, credentials: FiscalCredentials) -> str:
        """Sign the cashier in and return the access token."""
        response = await http.request(
            "POST",
            "/cashier/signin",
            headers=self._headers(credentials.license_key),
            data={"login": credentials.cashier_login, "password": credentials.cashier_pin},
        )
        try:
            return CBSignInResponse.model_validate(response).access_token
        except ValidationError:
            raise UpstreamUnavailable(f"{SOURCE} sign-in returned no access token", source=SOURCE)

    async def _current_shift(self, http: ApiHttpClient, headers: Dict[str, str]) -> Optional[CBShift]:
        response = await http.request("GET", "/cashier/shift", headers=headers)
        if not response:
            return None
        try:
            return CBShift.model_validate(response)
        except ValidationError:
            return None

    async def ensure_shift(self, http: ApiHttpClient, headers: Dict[str, str]) -> CBShift:
        """Return the open shift, opening one if needed."""
        shift = await self._current_shift(http, headers)
        if shift is not None and shift.is_open:
            return shift

        if shift is None or shift.is_closed:
            logger.info("Opening a new cashier shift")
            response = await http.request("POST", "/shifts", headers=headers, retry=False)
            try:
                shift = CBShift.model_validate(response)
            except ValidationError:
                raise UpstreamUnavailable(f"{SOURCE} returned an unexpected shift", source=SOURCE)

        for _ in range(self.shift_poll_attempts):
            if shift is not None and shift.is_open:
                return shift
            await asyncio.sleep(self.shift_poll_interval)
            shift = await self._current_shift(http, headers)

        if shift is not None and shift.is_open:
            return shift
        raise UpstreamUnavailable(f"{SOURCE} shift did not open in time", source=SOURCE)

    @staticmethod
    def build_sell_payload(request: FiscalReceiptRequest) -> Dict[str, Any]:
        """Checkbox /receipts/sell body for a receipt request."""
        payload: Dict[str, Any] = {
            "goods": [
                {
                    "good": {"code": g.code, "name": g.name, "price": g.price},
                    "quantity": g.quantity,
                }
                for g in request.goods
            ],
            "payments": [
                {"type": leg.type.value, "value": leg.value}
                for leg in request.payments
            ],
        }
        if request.cashier_name:
            payload["cashier_name"] = request.cashier_name
        if request.header:
            payload["header"] = request.header
        if request.footer:
            payload["footer"] = request.footer
        return payload

    async def issue_receipt(
        self,
        credentials: FiscalCredentials,
        request: FiscalReceiptRequest,
    ) -> FiscalReceipt:
        async with self._new_http() as http:
            access_token = await self.sign_in(http, credentials)
            headers = self._headers(credentials.license_key, access_token)
            await self.ensure_shift(http, headers)

            try:
                response = await http.request(
                    "POST",
                    "/receipts/sell",
                    headers=headers,
                    data=self.build_sell_payload(request),
                    retry=False,
                )
            except RequestOutcomeUnknown as e:
                raise FiscalSubmissionAmbiguous(
                    f"{SOURCE} receipt request outcome unknown", cause=e
                ) from e

        try:
            receipt = CBReceipt.model_validate(response)
        except ValidationError:
            # Receipt request was accepted but the answer is unreadable
            raise FiscalSubmissionAmbiguous(f"{SOURCE} returned an unreadable receipt")

        if receipt.status and receipt.status.upper() == "ERROR":
            raise UpstreamRejected(f"{SOURCE} rejected the receipt", source=SOURCE)

        return FiscalReceipt(
            receipt_id=receipt.id,
            fiscal_code=receipt.fiscal_code,
            status=receipt.status,
            created_at=receipt.created_at,
            receipt_url=f"{self.receipt_view_url}/{receipt.id}",
            pdf_url=f"{self.base_url.rstrip('/')}/receipts/{receipt.id}/pdf",
            total=receipt.total_sum,
        )
