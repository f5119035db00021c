"""
LibCal room reservation tools.
"""

import logging
from typing import Any

import httpx

from .auth import AuthorizationError, SpringshareAuthorizer
from .config import LibcalConfig
from .tools import LlmTool, is_missing

logger = logging.getLogger(__name__)


class ReservationError(Exception):
    """Raised when LibCal cannot be reached or answers with nonsense."""


class CancelReservationTool(LlmTool):
    """Cancels a study-room booking by its booking ID."""

    tool_name = "CancelReservationService"
    tool_description = "This tool is for cancelling a room reservation by its booking ID."
    tool_parameters_structure = {"bookingID": "string [REQUIRED]"}

    def __init__(self, config: LibcalConfig, authorizer: SpringshareAuthorizer):
        self.config = config
        self.authorizer = authorizer

    async def run(self, booking_id: str) -> tuple[bool, str]:
        """
        Ask LibCal to cancel a booking.

        Returns:
            (cancelled, error message from LibCal)

        Raises:
            ReservationError: If the call fails or the response is malformed.
        """
        try:
            token = await self.authorizer.get_token()
        except AuthorizationError as e:
            raise ReservationError(str(e)) from e

        url = f"{self.config.cancel_url.rstrip('/')}/{booking_id}"
        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            try:
                response = await client.post(
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"LibCal cancel for {booking_id} failed: {e}")
                raise ReservationError(f"LibCal request failed: {e}") from e

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise ReservationError("Unexpected LibCal response")

        result = data[0]
        return bool(result.get("cancelled")), str(result.get("error") or "")

    async def run_for_llm(self, tool_input: dict[str, Any]) -> str:
        booking_id = tool_input.get("bookingID")
        if is_missing(booking_id):
            return (
                "Cannot perform booking because missing parameter bookingID. "
                "Ask the customer to provide bookingID to perform booking\n"
            )

        try:
            cancelled, error = await self.run(str(booking_id))
        except ReservationError as e:
            cancelled, error = False, str(e)

        if cancelled:
            logger.info(f"Cancelled room reservation {booking_id}")
            return f"Room reservation with ID: {booking_id} is cancelled successfully\n"
        return (
            f"Room reservation with ID: {booking_id} is not cancelled successfully. "
            f"Error message: {error}\n"
        )
