"""
Google sign-in handoff.

The mobile app does the OAuth dance and sends us the Google access token. We
look the profile up at Google's userinfo endpoint and either log the user in
(app token) or hand back a short-lived registration token.
"""
import logging
import os

import requests
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

import database
import otp
from schemas import User
from tokens import create_temp_token, create_token, decode_temp_token

logger = logging.getLogger(__name__)

GOOGLE_USERINFO_URL = os.getenv("GOOGLE_USERINFO_URL", "https://www.googleapis.com/oauth2/v3/userinfo")
VALID_ROLES = ("user", "rider", "merchant")


def fetch_google_profile(access_token: str) -> dict:
    r = requests.get(
        GOOGLE_USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=10,
    )
    if r.status_code != 200:
        logger.warning("Google rejected access token: %s", r.status_code)
        raise HTTPException(status_code=401, detail="Invalid Google token")
    return r.json()


def public_user(doc: dict) -> dict:
    doc = database.serialize_doc(doc)
    return {
        "id": doc["id"],
        "email": doc.get("email"),
        "display_name": doc.get("display_name", ""),
        "phone": doc.get("phone", ""),
        "address": doc.get("address", ""),
        "balance": doc.get("balance", 0),
        "role": doc.get("role", "user"),
    }


def _check_role(role: str) -> None:
    if role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")


def login(access_token: str, role: str = "user") -> dict:
    _check_role(role)
    profile = fetch_google_profile(access_token)
    google_sub = profile.get("sub")
    email = (profile.get("email") or "").lower() or None
    if not google_sub:
        raise HTTPException(status_code=401, detail="Invalid Google token")

    users = database.get_db()["user"]
    user = users.find_one({"google_sub": google_sub})
    if not user and email:
        user = users.find_one({"email": email})

    if not user:
        temp = create_temp_token({
            "google_sub": google_sub,
            "email": email,
            "name": profile.get("name", ""),
            "picture": profile.get("picture", ""),
            "role": role,
        })
        return {
            "next": "REGISTER",
            "temp_token": temp,
            "profile": {"google_sub": google_sub, "email": email,
                        "name": profile.get("name"), "picture": profile.get("picture")},
        }

    if not user.get("is_onboarded"):
        temp = create_temp_token({"user_id": str(user["_id"]), "role": role})
        return {
            "next": "REGISTER",
            "temp_token": temp,
            "profile": {"google_sub": user.get("google_sub"), "email": user.get("email"),
                        "name": user.get("display_name"), "picture": ""},
        }

    if user.get("role", "user") != role:
        raise HTTPException(
            status_code=403,
            detail=f"This account is registered as {user.get('role')}. Please use the correct app.",
        )

    token = create_token({"user_id": str(user["_id"]), "role": user.get("role", "user")})
    logger.info("Google login for user %s", user["_id"])
    return {"next": "APP", "token": token, "user": public_user(user)}


def register(temp_token: str, display_name=None, phone=None, address=None, role: str = "user") -> dict:
    _check_role(role)
    decoded = decode_temp_token(temp_token)
    users = database.get_db()["user"]

    if decoded.get("user_id"):
        user = users.find_one({"_id": database.oid(decoded["user_id"])})
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
    else:
        google_sub = decoded.get("google_sub")
        user = users.find_one({"google_sub": google_sub})
        if not user:
            email = decoded.get("email")
            if not email:
                raise HTTPException(status_code=400, detail="Google account has no email")
            email = otp.normalize_email(email)
            new_user = User(
                email=email,
                username=email or google_sub,
                display_name=decoded.get("name") or "",
                role=decoded.get("role") or role,
                google_sub=google_sub,
                is_onboarded=False,
            )
            user_id = database.create_document("user", new_user)
            user = users.find_one({"_id": database.oid(user_id)})

    update = {"is_onboarded": True}
    if display_name and display_name.strip():
        update["display_name"] = display_name.strip()
    if phone and phone.strip():
        update["phone"] = phone.strip()
    if address and address.strip():
        update["address"] = address.strip()
    users.update_one({"_id": user["_id"]}, {"$set": update})
    user = users.find_one({"_id": user["_id"]})

    token = create_token({"user_id": str(user["_id"]), "role": user.get("role", "user")})
    logger.info("Google registration completed for user %s", user["_id"])
    return {"next": "APP", "token": token, "user": public_user(user)}


def check_user(email: str) -> dict:
    user = database.get_db()["user"].find_one({"email": email})
    if not user:
        return {"exists": False}
    return {"exists": True, "user": public_user(user)}


def register_google_user(email: str, display_name=None, phone=None, address=None, google_id=None) -> dict:
    users = database.get_db()["user"]
    if users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")
    user = User(
        email=email,
        username=email,
        display_name=display_name or "",
        phone=phone or "",
        address=address or "",
        google_id=google_id or None,
    )
    try:
        user_id = database.create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")
    logger.info("Registered user %s from legacy Google flow", user_id)
    return public_user(users.find_one({"_id": database.oid(user_id)}))
