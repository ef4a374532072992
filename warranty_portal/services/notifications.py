"""
Notification Service

Fire-and-forget emails for campaign lifecycle events:
    - campaign created
    - data file uploaded (mail list via web, any SFTP drop)
    - proofs uploaded (client is copied)
    - proofs approved

Recipients are every active ADMIN/STAFF user, optionally plus the client.
Delivery failures are logged and never reach the caller; there is no retry.
When MAIL_SERVER is not configured, messages are logged and skipped.
"""
import html
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..config import Settings
from ..models.db_models import JobDB, UserDB, UserRole

logger = logging.getLogger(__name__)


@dataclass
class Recipient:
    email: str
    name: Optional[str] = None


@dataclass
class EmailMessage:
    subject: str
    text_body: str
    html_body: str
    recipients: List[Recipient] = field(default_factory=list)


# =============================================================================
# TRANSPORTS
# =============================================================================

class LogOnlyTransport:
    """Used when no SMTP server is configured (dev/test mode)."""

    def send(self, message: EmailMessage) -> None:
        logger.warning(
            f"Mail server not configured - skipping email \"{message.subject}\" "
            f"to {len(message.recipients)} recipient(s)"
        )


class SmtpTransport:
    """Sends through an SMTP relay. First recipient is To, the rest are Cc."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, message: EmailMessage) -> None:
        cfg = self.settings
        primary, *cc = message.recipients

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{cfg.notification_from_name} <{cfg.notification_from_email}>"
        msg["To"] = f"{primary.name} <{primary.email}>" if primary.name else primary.email
        if cc:
            msg["Cc"] = ", ".join(r.email for r in cc)
        msg.attach(MIMEText(message.text_body, "plain"))
        msg.attach(MIMEText(message.html_body, "html"))

        with smtplib.SMTP(cfg.mail_server, cfg.mail_port, timeout=30) as smtp:
            if cfg.mail_use_tls:
                smtp.starttls()
            if cfg.mail_username and cfg.mail_password:
                smtp.login(cfg.mail_username, cfg.mail_password)
            smtp.send_message(msg)


def build_transport(settings: Settings):
    """Pick the SMTP transport when a server is configured, else log-only."""
    if settings.mail_server:
        return SmtpTransport(settings)
    return LogOnlyTransport()


# =============================================================================
# TEMPLATES
# =============================================================================

_FOOTER_STAFF = "You're receiving this email because you're an admin or staff member at ABT Warranty Portal."
_FOOTER_CLIENT = "You're receiving this email because you're an admin, staff member, or the client for this campaign."

_TEMPLATES = {
    "campaign_created": {
        "subject": "New Campaign Created - {campaign_name}",
        "title": "New Campaign Created",
        "lines": [
            ("Campaign Name", "{campaign_name}"),
            ("Period", "{month} {year}"),
            ("Files Uploaded", "{files_count} files"),
            ("Created By", "{created_by} ({creator_email})"),
            ("Time", "{time}"),
        ],
        "link": "{app_url}/campaigns",
        "status": "Waiting for data files to begin proofing",
        "footer": _FOOTER_STAFF,
    },
    "data_file_uploaded": {
        "subject": "Data Files Uploaded - {campaign_name} Ready for Proofing",
        "title": "Data Files Uploaded",
        "lines": [
            ("Campaign", "{campaign_name}"),
            ("Data File", "{file_name}"),
            ("File Size", "{file_size}"),
            ("Uploaded By", "{uploaded_by} ({uploader_email})"),
            ("Upload Method", "{channel}"),
            ("Time", "{time}"),
        ],
        "link": "{app_url}/campaigns/{campaign_id}",
        "status": "All assets ready - begin proofing process",
        "footer": _FOOTER_STAFF,
    },
    "proofs_uploaded": {
        "subject": "Proofs Ready for Review - {campaign_name}",
        "title": "Proofs Ready for Review",
        "lines": [
            ("Campaign", "{campaign_name}"),
            ("Proof Files", "{proof_files_count} files"),
            ("Uploaded By", "{uploaded_by} ({uploader_email})"),
            ("Time", "{time}"),
        ],
        "link": "{app_url}/campaigns/{campaign_id}/proofs",
        "status": "Ready for customer review and approval",
        "footer": _FOOTER_CLIENT,
    },
    "proofs_approved": {
        "subject": "Proofs Approved - {campaign_name}",
        "title": "Proofs Approved",
        "lines": [
            ("Campaign", "{campaign_name}"),
            ("Approved By", "{approved_by} ({approver_email})"),
            ("Approved At", "{approved_at}"),
        ],
        "link": "{app_url}/campaigns/{campaign_id}",
        "status": "Approved - ready for printing",
        "footer": _FOOTER_STAFF,
    },
}


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"


def format_file_size(size: int) -> str:
    """Human readable byte count (1536 -> '1.5 KB')."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def render(template_name: str, context: dict) -> EmailMessage:
    """Render subject, plain text and HTML bodies for a template."""
    template = _TEMPLATES[template_name]
    ctx = _SafeDict(context)
    subject = template["subject"].format_map(ctx)
    lines = [(label, value.format_map(ctx)) for label, value in template["lines"]]
    link = template["link"].format_map(ctx)

    text_body = "\n".join(
        [f"{template['title']} - ABT Warranty Portal", ""]
        + [f"{label}: {value}" for label, value in lines]
        + ["", f"View Campaign: {link}", "", f"Status: {template['status']}", "", "---", template["footer"]]
    )

    rows = "".join(
        f"<tr><td style=\"font-weight:600;color:#6c757d;padding:8px 16px 8px 0;\">{html.escape(label)}</td>"
        f"<td style=\"padding:8px 0;\">{html.escape(value)}</td></tr>"
        for label, value in lines
    )
    html_body = (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<div style=\"background:#1a1a1a;color:white;padding:20px 24px;\"><h2 style=\"margin:0;\">{html.escape(template['title'])}</h2></div>"
        f"<div style=\"padding:24px;\"><table>{rows}</table>"
        f"<p><a href=\"{html.escape(link)}\">View Campaign</a></p>"
        f"<p>{html.escape(template['status'])}</p></div>"
        f"<div style=\"color:#6c757d;font-size:12px;padding:16px 24px;\">{html.escape(template['footer'])}</div>"
        "</div>"
    )
    return EmailMessage(subject=subject, text_body=text_body, html_body=html_body)


# =============================================================================
# SERVICE
# =============================================================================

class NotificationService:
    """Resolves recipients, renders a template and hands it to the transport."""

    def __init__(self, db: Session, settings: Settings, transport=None):
        self.db = db
        self.settings = settings
        self.transport = transport or build_transport(settings)

    def get_recipients(self) -> List[Recipient]:
        """All active ADMIN and STAFF users."""
        try:
            users = (
                self.db.query(UserDB)
                .filter(UserDB.role.in_([UserRole.ADMIN, UserRole.STAFF]), UserDB.active.is_(True))
                .order_by(UserDB.created_at)
                .all()
            )
        except Exception:
            logger.exception("Error fetching notification recipients")
            return []
        return [Recipient(email=u.email, name=u.name) for u in users]

    def _dispatch(
        self,
        template_name: str,
        build_context: Callable[[], dict],
        build_extra: Optional[Callable[[], List[Recipient]]] = None,
    ) -> bool:
        """
        Render and send. Returns False on any failure; never raises.

        Context and extra recipients are built inside the guard, so a failed
        lazy load on the job is logged like any delivery failure.
        """
        try:
            recipients = self.get_recipients()
            known = {r.email for r in recipients}
            for r in (build_extra() if build_extra else []):
                if r.email not in known:
                    recipients.append(r)
                    known.add(r.email)
            if not recipients:
                logger.warning(f"No recipients for {template_name} email")
                return False

            context = {"app_url": self.settings.app_url, "time": _now_label(), **build_context()}
            message = render(template_name, context)
            message.recipients = recipients
            self.transport.send(message)
        except Exception:
            logger.exception(f"Error sending {template_name} email")
            return False

        logger.info(f"Email sent: \"{message.subject}\" to {len(recipients)} recipient(s)")
        return True

    def campaign_created(self, job: JobDB, creator: UserDB) -> bool:
        return self._dispatch("campaign_created", lambda: {
            "campaign_name": job.campaign_name,
            "campaign_id": job.id,
            "month": job.month,
            "year": job.year,
            "files_count": len(job.files),
            "created_by": creator.name or creator.email,
            "creator_email": creator.email,
        })

    def data_file_uploaded(
        self,
        campaign_name: str,
        campaign_id: Optional[str],
        file_name: str,
        file_size: int,
        uploaded_by: str,
        uploader_email: str,
        channel: str = "WEB",
    ) -> bool:
        return self._dispatch("data_file_uploaded", lambda: {
            "campaign_name": campaign_name,
            "campaign_id": campaign_id or "",
            "file_name": file_name,
            "file_size": format_file_size(file_size),
            "uploaded_by": uploaded_by,
            "uploader_email": uploader_email,
            "channel": channel,
        })

    def proofs_uploaded(self, job: JobDB, uploader: UserDB, proof_files_count: int) -> bool:
        def client_recipient() -> List[Recipient]:
            client = job.user
            return [Recipient(email=client.email, name=client.name)] if client is not None else []

        return self._dispatch("proofs_uploaded", lambda: {
            "campaign_name": job.campaign_name,
            "campaign_id": job.id,
            "proof_files_count": proof_files_count,
            "uploaded_by": uploader.name or uploader.email,
            "uploader_email": uploader.email,
        }, build_extra=client_recipient)

    def proofs_approved(self, job: JobDB, approver: UserDB) -> bool:
        def context() -> dict:
            approved_at = job.approved_at or datetime.utcnow()
            return {
                "campaign_name": job.campaign_name,
                "campaign_id": job.id,
                "approved_by": approver.name or approver.email,
                "approver_email": approver.email,
                "approved_at": approved_at.strftime("%b %d, %Y %I:%M %p UTC"),
            }

        return self._dispatch("proofs_approved", context)


def _now_label() -> str:
    return datetime.utcnow().strftime("%b %d, %Y %I:%M %p UTC")
