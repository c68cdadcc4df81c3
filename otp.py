"""E-mail one-time codes for signup."""
import hashlib
import hmac
import logging
import os
import re
import secrets
import smtplib
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage

from fastapi import HTTPException
from pydantic import EmailStr, TypeAdapter, ValidationError

import database
from schemas import EmailOtp

logger = logging.getLogger(__name__)

OTP_SECRET = os.getenv("OTP_SECRET", "dev-secret")
OTP_TTL = timedelta(minutes=10)

SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "0")) or None
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
MAIL_FROM = os.getenv("MAIL_FROM") or SMTP_USER

EMAIL_ADAPTER = TypeAdapter(EmailStr)
CODE_RE = re.compile(r"^\d{6}$")


def normalize_email(email) -> str:
    """Validate with the same rules as the `User.email` field, then lowercase."""
    if not email or not isinstance(email, str):
        raise HTTPException(status_code=400, detail="Invalid email")
    try:
        EMAIL_ADAPTER.validate_python(email.strip())
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid email")
    return email.strip().lower()


def otp_hash(email: str, code: str) -> str:
    return hashlib.sha256(f"{OTP_SECRET}:{email.lower()}:{code}".encode()).hexdigest()


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def send_otp_email(to: str, code: str) -> None:
    if not (SMTP_HOST and SMTP_PORT and SMTP_USER and SMTP_PASS):
        raise RuntimeError("Missing SMTP env (SMTP_HOST/SMTP_PORT/SMTP_USER/SMTP_PASS)")
    msg = EmailMessage()
    msg["From"] = MAIL_FROM
    msg["To"] = to
    msg["Subject"] = "Your verification code"
    msg.set_content(f"Your verification code is {code}. It expires in 10 minutes.")

    smtp_cls = smtplib.SMTP_SSL if SMTP_PORT == 465 else smtplib.SMTP
    with smtp_cls(SMTP_HOST, SMTP_PORT, timeout=15) as server:
        if SMTP_PORT != 465:
            server.starttls()
        server.login(SMTP_USER, SMTP_PASS)
        server.send_message(msg)


def request_otp(email) -> None:
    email = normalize_email(email)
    code = generate_code()
    record = EmailOtp(email=email, code_hash=otp_hash(email, code),
                      expires_at=datetime.now(timezone.utc) + OTP_TTL)

    coll = database.get_db()["emailotp"]
    coll.delete_many({"email": email})
    database.create_document("emailotp", record)

    send_otp_email(email, code)
    logger.info("Sent verification code to %s", email)


def _aware(dt: datetime) -> datetime:
    # pymongo hands datetimes back naive (UTC) unless the client is tz_aware
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def verify_otp(email, code) -> str:
    """Check a code and return a fresh verification id stored on the signup stub."""
    email = normalize_email(email)
    if not code or not isinstance(code, str) or not CODE_RE.match(code):
        raise HTTPException(status_code=400, detail="Invalid code")

    coll = database.get_db()["emailotp"]
    doc = coll.find_one({"email": email})
    if not doc:
        raise HTTPException(status_code=400, detail="OTP not found")
    if _aware(doc["expires_at"]) < datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="OTP expired")
    if not hmac.compare_digest(otp_hash(email, code), doc["code_hash"]):
        logger.warning("Wrong verification code for %s", email)
        raise HTTPException(status_code=400, detail="OTP invalid")

    coll.delete_many({"email": email})

    verification_id = secrets.token_hex(16)
    now = datetime.now(timezone.utc)
    database.get_db()["signup"].update_one(
        {"email": email},
        {"$set": {"email": email, "email_verification_id": verification_id, "updated_at": now},
         "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    return verification_id


def complete_signup(email, phone, verification_id, first_name=None, last_name=None) -> dict:
    email = normalize_email(email)
    if not phone or not isinstance(phone, str) or not phone.startswith("+"):
        raise HTTPException(status_code=400, detail="Invalid phone")
    if not verification_id or not isinstance(verification_id, str):
        raise HTTPException(status_code=400, detail="Missing verification_id")

    coll = database.get_db()["signup"]
    existing = coll.find_one({"email": email})
    if not existing or not existing.get("email_verification_id") or \
            not hmac.compare_digest(existing["email_verification_id"], verification_id):
        raise HTTPException(status_code=400, detail="Email not verified")

    # the verification id is good for one signup only
    coll.update_one(
        {"_id": existing["_id"]},
        {"$set": {"first_name": first_name, "last_name": last_name, "phone": phone,
                  "updated_at": datetime.now(timezone.utc)},
         "$unset": {"email_verification_id": ""}},
    )
    doc = coll.find_one({"_id": existing["_id"]})
    logger.info("Signup completed for %s", email)
    return {
        "id": str(doc["_id"]),
        "email": doc["email"],
        "first_name": doc.get("first_name"),
        "last_name": doc.get("last_name"),
        "phone": doc.get("phone"),
    }
