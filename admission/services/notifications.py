"""Candidate and HR notifications over email (SMTP) and WhatsApp (Twilio).

Transports raise on failure; ``NotificationDispatcher.send`` turns every
failure into a logged ``DeliveryResult`` so callers never fail because a
message could not be delivered.
"""

import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol

import httpx

from admission.config import settings
from admission.utils.text import format_whatsapp_address, mask_cpf

logger = logging.getLogger(__name__)

EMAIL = "email"
WHATSAPP = "whatsapp"

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class NotificationError(Exception):
    pass


@dataclass
class Message:
    subject: str
    text: str
    html: str | None = None


@dataclass
class DeliveryResult:
    channel: str
    destination: str
    delivered: bool
    error: str | None = None

    @property
    def status(self) -> str:
        return "delivered" if self.delivered else "failed"

    def to_dict(self) -> dict:
        body = {"canal": self.channel, "destino": self.destination, "status": self.status}
        if self.error:
            body["erro"] = self.error
        return body


class Transport(Protocol):
    def send(self, destination: str, message: Message) -> None: ...


class EmailTransport:
    def __init__(self, host: str, port: int, username: str = "", password: str = "",
                 use_tls: bool = True, sender: str = "", sender_name: str = "",
                 timeout: float = 30.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.sender_name = sender_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "EmailTransport":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.email_from,
            sender_name=settings.email_from_name,
            timeout=settings.http_timeout_seconds,
        )

    def send(self, destination: str, message: Message) -> None:
        if not self.host:
            raise NotificationError("SMTP não configurado")

        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = formataddr((self.sender_name, self.sender))
        msg["To"] = destination
        msg.set_content(message.text)
        if message.html:
            msg.add_alternative(message.html, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)


class WhatsAppTransport:
    """Twilio WhatsApp messages via the plain REST API."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 timeout: float = 30.0, client: httpx.Client | None = None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls) -> "WhatsAppTransport":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_whatsapp_number,
            timeout=settings.http_timeout_seconds,
        )

    def send(self, destination: str, message: Message) -> None:
        if not (self.account_sid and self.auth_token and self.from_number):
            raise NotificationError("Twilio não configurado")

        to_address = format_whatsapp_address(destination)
        if to_address is None:
            raise NotificationError(f"Número de WhatsApp inválido: {destination}")
        from_address = self.from_number
        if not from_address.startswith("whatsapp:"):
            from_address = f"whatsapp:{from_address}"

        url = TWILIO_MESSAGES_URL.format(sid=self.account_sid)
        data = {"From": from_address, "To": to_address, "Body": message.text}
        auth = (self.account_sid, self.auth_token)

        if self._client is not None:
            response = self._client.post(url, data=data, auth=auth, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, data=data, auth=auth)
        response.raise_for_status()
        logger.info("WhatsApp sent to %s (sid=%s)", to_address, response.json().get("sid"))


@dataclass
class NotificationDispatcher:
    transports: dict[str, Transport] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> "NotificationDispatcher":
        return cls(transports={
            EMAIL: EmailTransport.from_settings(),
            WHATSAPP: WhatsAppTransport.from_settings(),
        })

    def send(self, channel: str, destination: str | None, message: Message) -> DeliveryResult:
        if not destination:
            return DeliveryResult(channel, "", False, "destino ausente")
        transport = self.transports.get(channel)
        if transport is None:
            return DeliveryResult(channel, destination, False, f"canal desconhecido: {channel}")
        try:
            transport.send(destination, message)
        except (NotificationError, smtplib.SMTPException, httpx.HTTPError, OSError) as exc:
            logger.warning("Notification via %s to %s failed: %s", channel, destination, exc)
            return DeliveryResult(channel, destination, False, str(exc))
        logger.info("Notification via %s delivered to %s", channel, destination)
        return DeliveryResult(channel, destination, True)


# --- Messages ---


def credentials_message(nome: str, cpf: str, password: str, login_url: str,
                        job_title: str | None = None) -> Message:
    vaga = f" para a vaga de {job_title}" if job_title else ""
    text = (
        f"Olá, {nome}! Parabéns, você foi aprovado{vaga}.\n\n"
        "Para continuar o processo de admissão, envie seus documentos pelo portal:\n"
        f"{login_url}\n\n"
        f"CPF: {mask_cpf(cpf)}\n"
        f"Senha: {password}\n\n"
        f"A senha é válida por {settings.credential_ttl_days} dias. "
        "Fotos devem estar nítidas e o comprovante de residência deve ser de até 3 meses."
    )
    html = (
        f"<h2>Parabéns, {nome}!</h2>"
        f"<p>Você foi aprovado{vaga}. Para continuar o processo de admissão, "
        "envie seus documentos pelo nosso portal.</p>"
        f"<p><strong>CPF:</strong> {mask_cpf(cpf)}<br><strong>Senha:</strong> {password}</p>"
        f'<p><a href="{login_url}">Enviar documentos</a></p>'
        f"<p>A senha é válida por {settings.credential_ttl_days} dias.</p>"
    )
    return Message(subject="Envio de documentos para admissão", text=text, html=html)


def documents_complete_message(nome: str, candidate_id: int, job_title: str | None,
                               panel_url: str) -> Message:
    vaga = job_title or "sem vaga"
    text = (
        f"{nome} (candidato #{candidate_id}, {vaga}) concluiu o envio dos documentos "
        f"de admissão e aguarda validação.\n{panel_url}"
    )
    return Message(subject=f"Documentos completos: {nome}", text=text)


def send_credentials(dispatcher: NotificationDispatcher, nome: str, email: str | None,
                     telefone: str | None, cpf: str, password: str,
                     job_title: str | None = None) -> list[DeliveryResult]:
    message = credentials_message(nome, cpf, password, settings.portal_login_url, job_title)
    results = []
    if email:
        results.append(dispatcher.send(EMAIL, email, message))
    if telefone:
        results.append(dispatcher.send(WHATSAPP, telefone, message))
    return results


def notify_hr_documents_complete(dispatcher: NotificationDispatcher, nome: str,
                                 candidate_id: int, job_title: str | None) -> list[DeliveryResult]:
    panel_url = f"{settings.frontend_url.rstrip('/')}/documentos"
    message = documents_complete_message(nome, candidate_id, job_title, panel_url)
    results = [dispatcher.send(EMAIL, address, message) for address in settings.hr_emails]
    if settings.hr_notification_phone:
        results.append(dispatcher.send(WHATSAPP, settings.hr_notification_phone, message))
    return results


# --- LGPD ---


LGPD_TYPE_LABELS = {"exportacao": "exportação", "exclusao": "exclusão"}


def _lgpd_footer() -> str:
    return f"\n\nDúvidas sobre seus dados: {settings.lgpd_contact_email}"


def lgpd_code_message(protocol: str, tipo: str, code: str, nome: str | None,
                      ttl_minutes: int) -> Message:
    greeting = f"Olá, {nome}!" if nome else "Olá!"
    not_found = "" if nome else (
        "\n\nNão encontramos uma candidatura associada a este email. "
        "Sua solicitação será analisada pela equipe de RH."
    )
    text = (
        f"{greeting}\n\nRecebemos sua solicitação de {LGPD_TYPE_LABELS.get(tipo, tipo)} "
        f"de dados pessoais (protocolo {protocol}).\n\n"
        f"Código de verificação: {code}\nVálido por {ttl_minutes} minutos."
        f"{not_found}\n\nSe você não fez esta solicitação, ignore esta mensagem."
        f"{_lgpd_footer()}"
    )
    return Message(subject=f"Código de verificação - Solicitação LGPD {protocol}", text=text)


def lgpd_confirmed_message(protocol: str, tipo: str, nome: str) -> Message:
    text = (
        f"Olá, {nome}!\n\nSua solicitação de {LGPD_TYPE_LABELS.get(tipo, tipo)} de dados "
        f"pessoais (protocolo {protocol}) foi confirmada e está em análise. "
        "Você receberá uma nova mensagem quando ela for concluída."
        f"{_lgpd_footer()}"
    )
    return Message(subject=f"Solicitação LGPD confirmada - {protocol}", text=text)


def lgpd_export_message(protocol: str, nome: str) -> Message:
    text = (
        f"Olá, {nome}!\n\nSua solicitação de exportação de dados pessoais "
        f"(protocolo {protocol}) foi concluída. A equipe de RH enviará a cópia dos seus dados "
        "pelo canal combinado."
        f"{_lgpd_footer()}"
    )
    return Message(subject=f"Exportação de dados concluída - {protocol}", text=text)


def lgpd_erasure_message(protocol: str, requested_at: str, completed_at: str,
                         receipt_hash: str) -> Message:
    text = (
        "Olá!\n\nSua solicitação de exclusão de dados pessoais foi concluída.\n\n"
        f"Protocolo: {protocol}\n"
        f"Solicitado em: {requested_at}\n"
        f"Concluído em: {completed_at}\n"
        f"Comprovante: {receipt_hash[:16]}...\n\n"
        "Nome, email, telefone, CPF, endereço, currículo e documentos de admissão foram "
        "removidos. Registros anonimizados podem ser mantidos para auditoria."
        f"{_lgpd_footer()}"
    )
    return Message(subject=f"Comprovante de exclusão LGPD - {protocol}", text=text)


def lgpd_email_not_found_message(protocol: str, tipo: str, email: str) -> Message:
    text = (
        f"Olá!\n\nRecebemos sua solicitação de {LGPD_TYPE_LABELS.get(tipo, tipo)} de dados "
        f"pessoais (protocolo {protocol}), mas não encontramos registros com o email {email}.\n\n"
        "Confira se este é o email usado na candidatura ou faça uma nova solicitação "
        "com outro endereço."
        f"{_lgpd_footer()}"
    )
    return Message(subject=f"Solicitação LGPD - email não encontrado ({protocol})", text=text)
