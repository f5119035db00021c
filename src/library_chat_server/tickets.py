"""
LibAnswers ticket creation for conversations handed off to a librarian.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from .auth import AuthorizationError, SpringshareAuthorizer
from .config import TicketConfig

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class TicketError(Exception):
    """Raised when a ticket form is invalid or cannot be submitted."""


@dataclass
class TicketForm:
    """Fields the patron fills in on the offline ticket form."""

    name: str
    email: str
    question: str
    details: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "TicketForm":
        """
        Build and validate a form from the client payload.

        Raises:
            TicketError: If the payload is not an object or a required field
                is missing or malformed.
        """
        if not isinstance(data, dict):
            raise TicketError("Ticket form must be an object")

        form = cls(
            name=str(data.get("name") or "").strip(),
            email=str(data.get("email") or "").strip(),
            question=str(data.get("question") or "").strip(),
            details=str(data.get("details") or "").strip(),
        )

        missing = [f for f in ("name", "email", "question") if not getattr(form, f)]
        if missing:
            raise TicketError(f"Missing required field(s): {', '.join(missing)}")
        if not EMAIL_PATTERN.match(form.email):
            raise TicketError(f"Invalid email address: {form.email}")
        return form


class TicketService:
    """Submits ticket forms to LibAnswers."""

    def __init__(self, config: TicketConfig, authorizer: SpringshareAuthorizer):
        self.config = config
        self.authorizer = authorizer

    async def create_ticket(self, form: TicketForm) -> str:
        """
        Post the form and return the ticket URL (empty if LibAnswers omits it).

        Raises:
            TicketError: If authorization or the HTTP call fails.
        """
        try:
            token = await self.authorizer.get_token()
        except AuthorizationError as e:
            raise TicketError(str(e)) from e

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            try:
                response = await client.post(
                    self.config.create_url,
                    headers={"Authorization": f"Bearer {token}"},
                    data={
                        "quid": self.config.queue_id,
                        "pquestion": form.question,
                        "pdetails": form.details,
                        "pname": form.name,
                        "pemail": form.email,
                    },
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Ticket creation failed: {e}")
                raise TicketError(f"Ticket request failed: {e}") from e

        if not isinstance(data, dict):
            return ""
        return str(data.get("ticketUrl") or "")

    async def submit(self, form_data: Any) -> str:
        """Validate and submit a raw form, describing the outcome in text."""
        try:
            form = TicketForm.from_dict(form_data)
            ticket_url = await self.create_ticket(form)
        except TicketError as e:
            logger.warning(f"Ticket not created: {e}")
            return f"Your ticket could not be submitted. {e}"

        logger.info(f"Ticket created for {form.email}")
        if ticket_url:
            return f"Your ticket has been submitted. A librarian will contact you. ({ticket_url})"
        return "Your ticket has been submitted. A librarian will contact you."
