"""
GreenLease Email Service

Postmark transport for signing invitations and signed-contract delivery.
Without POSTMARK_SERVER_TOKEN the service runs in dev mode: messages are
logged and recorded as sent, nothing leaves the server.

Sending never raises. Every attempt is stored in message_logs and the
MessageLog is returned; callers look at ``status`` to report failures.
"""
from postmarker.core import PostmarkClient
from database import database
from models import MessageLog, EmailTemplateAlias, AuditAction
from utils.audit import create_audit_log
from datetime import datetime, timezone
from html import escape
import base64
import os
import logging
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)

DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "contracts@greenlease.me")
BRAND_NAME = "GreenLease"


class EmailService:
    def __init__(self, server_token: Optional[str] = None):
        postmark_token = server_token or os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    async def send_email(
        self,
        recipient: str,
        template_alias: EmailTemplateAlias,
        subject: str,
        html_body: str,
        text_body: str,
        contract_id: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> MessageLog:
        """Send one email and record the attempt."""
        message_log = MessageLog(
            contract_id=contract_id,
            recipient=recipient,
            template_alias=template_alias,
            subject=subject,
            status="queued",
            has_attachment=bool(attachments),
        )

        try:
            if self.client:
                send_kwargs = dict(
                    From=DEFAULT_SENDER,
                    To=recipient,
                    Subject=subject,
                    HtmlBody=html_body,
                    TextBody=text_body,
                    TrackOpens=True,
                    Tag=template_alias.value,
                )
                if attachments:
                    send_kwargs["Attachments"] = attachments
                response = self.client.emails.send(**send_kwargs)

                message_log.postmark_message_id = response["MessageID"]
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"Email '{template_alias.value}' sent to {recipient}: {response['MessageID']}")
            else:
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"[DEV MODE] Email '{template_alias.value}' logged (not sent) to {recipient}")

        except Exception as e:
            message_log.status = "failed"
            message_log.error_message = str(e)
            message_log.provider_error_type = type(e).__name__
            error_code = getattr(e, "code", None) or getattr(e, "error_code", None)
            message_log.provider_error_code = str(error_code) if error_code is not None else None
            logger.error(f"Failed to send email to {recipient}: {e}")

        await self._record(message_log)
        return message_log

    async def _record(self, message_log: MessageLog):
        try:
            db = database.get_db()
            await db.message_logs.insert_one(message_log.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Failed to store message log {message_log.message_id}: {e}")

        await create_audit_log(
            action=AuditAction.EMAIL_SENT if message_log.status == "sent" else AuditAction.EMAIL_FAILED,
            contract_id=message_log.contract_id,
            resource_type="message",
            resource_id=message_log.message_id,
            metadata={
                "template": message_log.template_alias.value,
                "status": message_log.status,
                "postmark_id": message_log.postmark_message_id,
                "error": message_log.error_message,
            }
        )

    # ------------------------------------------------------------------
    # Bodies
    # ------------------------------------------------------------------

    def _wrap_html(self, title: str, content: str) -> str:
        return f"""
            <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <div style="background-color: #14532d; padding: 20px; border-radius: 8px 8px 0 0;">
                    <h1 style="color: #bbf7d0; margin: 0;">{escape(title)}</h1>
                </div>
                <div style="padding: 20px; border: 1px solid #e2e8f0; border-top: none; border-radius: 0 0 8px 8px;">
                    {content}
                </div>
                <p style="color: #64748b; font-size: 12px; margin-top: 20px;">{BRAND_NAME}</p>
            </body>
            </html>
            """

    @staticmethod
    def pdf_attachment(pdf_bytes: bytes, filename: str = "lease-contract.pdf") -> Dict[str, Any]:
        return {
            "Name": filename,
            "Content": base64.b64encode(pdf_bytes).decode("ascii"),
            "ContentType": "application/pdf",
        }

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_signature_invitation(
        self,
        recipient: str,
        signer_name: str,
        property_address: str,
        signing_url: str,
        expires_at: datetime,
        contract_id: Optional[str] = None,
    ) -> MessageLog:
        subject = f"Lease contract ready for your signature - {property_address}"
        expires = expires_at.strftime("%d/%m/%Y")
        content = f"""
                    <p>Hello {escape(signer_name)},</p>
                    <p>You have been invited to sign the lease contract for <strong>{escape(property_address)}</strong>.</p>
                    <p style="margin: 30px 0;">
                        <a href="{escape(signing_url)}"
                           style="background-color: #16a34a; color: white; padding: 12px 24px;
                                  text-decoration: none; border-radius: 6px; display: inline-block;">
                            Review and sign
                        </a>
                    </p>
                    <p style="color: #666; font-size: 14px;">This link is personal and expires on {expires}.</p>
        """
        text_body = (
            f"Hello {signer_name},\n\n"
            f"You have been invited to sign the lease contract for {property_address}.\n"
            f"Review and sign: {signing_url}\n\n"
            f"This link is personal and expires on {expires}.\n"
        )
        return await self.send_email(
            recipient=recipient,
            template_alias=EmailTemplateAlias.SIGNATURE_INVITATION,
            subject=subject,
            html_body=self._wrap_html("Your signature is requested", content),
            text_body=text_body,
            contract_id=contract_id,
        )

    async def send_signed_contract(
        self,
        recipient: str,
        signer_name: str,
        property_address: str,
        pdf_bytes: bytes,
        contract_id: Optional[str] = None,
    ) -> MessageLog:
        subject = f"Signed lease contract - {property_address}"
        content = f"""
                    <p>Hello {escape(signer_name)},</p>
                    <p>All parties have signed the lease contract for <strong>{escape(property_address)}</strong>.</p>
                    <p>The signed contract is attached to this email. Please keep it for your records.</p>
        """
        text_body = (
            f"Hello {signer_name},\n\n"
            f"All parties have signed the lease contract for {property_address}.\n"
            "The signed contract is attached to this email.\n"
        )
        return await self.send_email(
            recipient=recipient,
            template_alias=EmailTemplateAlias.SIGNED_CONTRACT,
            subject=subject,
            html_body=self._wrap_html("Your lease contract is signed", content),
            text_body=text_body,
            contract_id=contract_id,
            attachments=[self.pdf_attachment(pdf_bytes)],
        )

    async def send_contract_pdf(self, recipient: str, pdf_bytes: bytes) -> MessageLog:
        content = """
                    <p>Hello,</p>
                    <p>Your lease contract is attached to this email as a PDF.</p>
        """
        return await self.send_email(
            recipient=recipient,
            template_alias=EmailTemplateAlias.CONTRACT_PDF,
            subject="Your lease contract",
            html_body=self._wrap_html("Your lease contract", content),
            text_body="Hello,\n\nYour lease contract is attached to this email as a PDF.\n",
            attachments=[self.pdf_attachment(pdf_bytes)],
        )


email_service = EmailService()
