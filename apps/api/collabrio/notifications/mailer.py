from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol

from collabrio.config import settings
from collabrio.errors import EmailDeliveryFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
  to: str
  subject: str
  text: str
  reply_to: str | None = None


@dataclass(frozen=True)
class Invitee:
  email: str
  name: str
  has_account: bool


@dataclass(frozen=True)
class InvitationResult:
  email: str
  name: str
  user_type: str
  delivered: bool
  error: str | None = None


class Mailer(Protocol):
  async def send(self, msg: OutgoingEmail) -> None: ...


@dataclass
class LocalMailer:
  """Keeps messages in memory instead of delivering them; used when SMTP is off."""

  outbox: list[OutgoingEmail] = field(default_factory=list)

  async def send(self, msg: OutgoingEmail) -> None:
    self.outbox.append(msg)
    logger.info("email to %s queued locally: %s", msg.to, msg.subject)


class SmtpMailer:
  async def send(self, msg: OutgoingEmail) -> None:
    host = (settings.smtp_host or "").strip()
    from_addr = (settings.smtp_from or settings.support_email).strip()
    if not host:
      raise EmailDeliveryFailure("SMTP host is not configured", recipient=msg.to)

    def _send_sync() -> None:
      m = EmailMessage()
      m["Subject"] = msg.subject
      m["From"] = from_addr
      m["To"] = msg.to
      if msg.reply_to:
        m["Reply-To"] = msg.reply_to
      m.set_content(msg.text)
      with smtplib.SMTP(host=host, port=int(settings.smtp_port), timeout=15) as s:
        s.ehlo()
        if settings.smtp_starttls:
          s.starttls()
          s.ehlo()
        if settings.smtp_username and settings.smtp_password:
          s.login(settings.smtp_username, settings.smtp_password)
        s.send_message(m)

    try:
      await asyncio.to_thread(_send_sync)
    except (smtplib.SMTPException, OSError) as exc:
      raise EmailDeliveryFailure(f"Failed to send email to {msg.to}: {exc}", recipient=msg.to) from exc


local_outbox = LocalMailer()


def mailer_for() -> Mailer:
  if settings.smtp_enabled:
    return SmtpMailer()
  return local_outbox


def _deadline_text(deadline: datetime | None) -> str:
  if deadline is None:
    return "No deadline set"
  return deadline.strftime("%d %b %Y")


def render_invitation(
  *,
  invitee: Invitee,
  board_id: str,
  board_name: str,
  description: str,
  priority: str,
  deadline: datetime | None,
  inviter_name: str,
  inviter_email: str | None = None,
) -> OutgoingEmail:
  board_name = board_name or "New Board"
  inviter = inviter_name or "a team member"
  action_url = settings.board_url(board_id) if invitee.has_account else settings.login_url()
  action = "Open the board" if invitee.has_account else "Sign in to get started"
  lines = [
    f"Hi {invitee.name or 'User'},",
    "",
    f'You have been invited to join the board "{board_name}" by {inviter}.',
    "",
    f"Board: {board_name}",
    f"Description: {description or 'No description provided'}",
    f"Priority: {priority or 'Medium'}",
    f"Deadline: {_deadline_text(deadline)}",
    "",
    f"{action}: {action_url}",
    "",
    f"Questions? Contact {settings.support_email}.",
    f"The {settings.company_name} team",
  ]
  return OutgoingEmail(
    to=invitee.email,
    subject=f"[{settings.company_name}] You've been added to {board_name}",
    text="\n".join(lines),
    reply_to=inviter_email or settings.support_email,
  )


async def send_board_invitations(
  invitees: list[Invitee],
  *,
  board_id: str,
  board_name: str,
  description: str,
  priority: str,
  deadline: datetime | None,
  inviter_name: str,
  inviter_email: str | None = None,
  mailer: Mailer | None = None,
) -> list[InvitationResult]:
  """
  Send one invitation per invitee.

  Delivery failures are logged and reported per recipient; they never raise.
  """
  mailer = mailer or mailer_for()
  out: list[InvitationResult] = []
  for inv in invitees:
    msg = render_invitation(
      invitee=inv,
      board_id=board_id,
      board_name=board_name,
      description=description,
      priority=priority,
      deadline=deadline,
      inviter_name=inviter_name,
      inviter_email=inviter_email,
    )
    user_type = "existing" if inv.has_account else "new"
    try:
      await mailer.send(msg)
    except EmailDeliveryFailure as exc:
      logger.warning("invitation to %s for board %s not delivered: %s", inv.email, board_id, exc.message)
      out.append(InvitationResult(email=inv.email, name=inv.name, user_type=user_type, delivered=False, error=exc.message))
      continue
    out.append(InvitationResult(email=inv.email, name=inv.name, user_type=user_type, delivered=True))
  return out
