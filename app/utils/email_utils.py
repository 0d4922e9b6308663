import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app
from markupsafe import escape


def _medication_rows(medications):
    rows = []
    for med in medications:
        when = med.get("time_of_day") or ""
        rows.append(
            f"<li><strong>{escape(med.get('medication_name') or '')}</strong> {escape(med.get('dosage') or '')}"
            f" <span style=\"color: #666;\">{escape(med.get('frequency') or '')} {escape(when)}</span></li>"
        )
    return "".join(rows) or "<li>Your daily medication set</li>"


def _send(to_email: str, subject: str, body: str):
    msg = MIMEMultipart("alternative")
    msg["From"] = current_app.config["SMTP_USER"]
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "html"))

    with smtplib.SMTP(current_app.config["SMTP_HOST"], current_app.config["SMTP_PORT"]) as server:
        server.starttls()
        server.login(current_app.config["SMTP_USER"], current_app.config["SMTP_PASS"])
        server.sendmail(current_app.config["SMTP_USER"], to_email, msg.as_string())


def send_reminder_email(to_email: str, patient_name: str, medications) -> bool:
    """Returns False when email is disabled in config."""
    if not current_app.config.get("EMAIL_ENABLED"):
        current_app.logger.info(f"Email disabled, reminder to {to_email} not sent")
        return False

    subject = "Medication reminder"
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #2563eb;">Hi {escape(patient_name)},</h2>
        <p>This is a friendly reminder from your caretaker to take today's medication:</p>
        <ul>{_medication_rows(medications)}</ul>
        <p>Remember to mark each dose as taken in MedTrack once you're done.</p>
    </div>
    """
    _send(to_email, subject, body)
    return True
