from datetime import datetime, timedelta, timezone

import otp


def test_request_otp_stores_hash_and_sends_code(client, db, sent_codes):
    r = client.post("/api/auth/request-otp", json={"email": " Nok@Example.com "})
    assert r.status_code == 200
    assert r.json() == {"success": True}

    code = sent_codes["nok@example.com"]
    assert len(code) == 6 and code.isdigit()
    rows = list(db["emailotp"].find({"email": "nok@example.com"}))
    assert len(rows) == 1
    assert rows[0]["code_hash"] == otp.otp_hash("nok@example.com", code)


def test_request_otp_replaces_previous_code(client, db, sent_codes):
    client.post("/api/auth/request-otp", json={"email": "nok@example.com"})
    client.post("/api/auth/request-otp", json={"email": "nok@example.com"})
    assert db["emailotp"].count_documents({"email": "nok@example.com"}) == 1


def test_request_otp_rejects_malformed_email(client, db, sent_codes):
    for bad in ["not-an-email", "a@b", "", None]:
        r = client.post("/api/auth/request-otp", json={"email": bad})
        assert r.status_code == 400
        assert r.json() == {"success": False, "message": "Invalid email"}
    assert db["emailotp"].count_documents({}) == 0
    assert sent_codes == {}


def test_verify_otp_issues_verification_id(client, db, sent_codes):
    client.post("/api/auth/request-otp", json={"email": "nok@example.com"})
    code = sent_codes["nok@example.com"]

    r = client.post("/api/auth/verify-otp", json={"email": "nok@example.com", "code": code})
    assert r.status_code == 200
    vid = r.json()["verification_id"]
    assert len(vid) == 32
    int(vid, 16)

    assert db["emailotp"].count_documents({}) == 0
    assert db["signup"].find_one({"email": "nok@example.com"})["email_verification_id"] == vid


def test_verify_otp_wrong_code(client, db, sent_codes):
    client.post("/api/auth/request-otp", json={"email": "nok@example.com"})
    wrong = "000000" if sent_codes["nok@example.com"] != "000000" else "111111"

    r = client.post("/api/auth/verify-otp", json={"email": "nok@example.com", "code": wrong})
    assert r.status_code == 400
    assert r.json()["message"] == "OTP invalid"
    assert db["signup"].count_documents({}) == 0
    assert db["emailotp"].count_documents({}) == 1


def test_verify_otp_expired(client, db):
    db["emailotp"].insert_one({
        "email": "nok@example.com",
        "code_hash": otp.otp_hash("nok@example.com", "123456"),
        "expires_at": datetime.now(timezone.utc) - timedelta(minutes=1),
    })
    r = client.post("/api/auth/verify-otp", json={"email": "nok@example.com", "code": "123456"})
    assert r.status_code == 400
    assert r.json()["message"] == "OTP expired"
    assert db["signup"].count_documents({}) == 0


def test_verify_otp_bad_code_format(client):
    r = client.post("/api/auth/verify-otp", json={"email": "nok@example.com", "code": "12ab"})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid code"


def test_verify_otp_not_requested(client):
    r = client.post("/api/auth/verify-otp", json={"email": "nok@example.com", "code": "123456"})
    assert r.status_code == 400
    assert r.json()["message"] == "OTP not found"


def _verified(client, sent_codes, email="nok@example.com"):
    client.post("/api/auth/request-otp", json={"email": email})
    r = client.post("/api/auth/verify-otp", json={"email": email, "code": sent_codes[email]})
    return r.json()["verification_id"]


def test_signup_consumes_verification_id(client, db, sent_codes):
    vid = _verified(client, sent_codes)
    body = {"email": "nok@example.com", "first_name": "Nok", "last_name": "Sae", "phone": "+66812345678",
            "verification_id": vid}

    r = client.post("/api/auth/signup", json=body)
    assert r.status_code == 200
    signup = r.json()["signup"]
    assert signup["first_name"] == "Nok"
    assert signup["phone"] == "+66812345678"

    again = client.post("/api/auth/signup", json=body)
    assert again.status_code == 400
    assert again.json()["message"] == "Email not verified"


def test_signup_requires_matching_verification(client, sent_codes):
    _verified(client, sent_codes)
    r = client.post("/api/auth/signup", json={"email": "nok@example.com", "phone": "+66812345678",
                                              "verification_id": "f" * 32})
    assert r.status_code == 400
    assert r.json()["message"] == "Email not verified"


def test_signup_rejects_phone_without_country_code(client, sent_codes):
    vid = _verified(client, sent_codes)
    r = client.post("/api/auth/signup", json={"email": "nok@example.com", "phone": "0812345678",
                                              "verification_id": vid})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid phone"


def test_check_user_and_legacy_google_register(client, db):
    r = client.post("/api/auth/check-user", json={"email": "mali@example.com"})
    assert r.json() == {"exists": False}

    r = client.post("/api/auth/register-google-user",
                    json={"email": "Mali@Example.com", "display_name": "Mali", "google_id": "g-1"})
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "mali@example.com"
    assert r.json()["user"]["balance"] == 0

    r = client.post("/api/auth/check-user", json={"email": "mali@example.com"})
    assert r.json()["exists"] is True
    assert r.json()["user"]["display_name"] == "Mali"

    dup = client.post("/api/auth/register-google-user", json={"email": "mali@example.com"})
    assert dup.status_code == 400
    assert dup.json()["message"] == "User already exists"


def test_reserved_domains_are_invalid_emails(client, db, sent_codes):
    for email in ("mali@shop.test", "mali@printer.local"):
        r = client.post("/api/auth/register-google-user", json={"email": email})
        assert r.json() == {"success": False, "message": "Invalid email"}
        assert client.post("/api/auth/request-otp", json={"email": email}).status_code == 400
    assert db["user"].count_documents({}) == 0
    assert sent_codes == {}
