import logging
import os
import random
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
import google_auth
import orders
import otp
import seed
import wallet
from database import create_document, get_documents, oid, serialize_doc
from schemas import (
    ChatMessage as ChatMessageSchema,
    DryService,
    FoldingService,
    IroningService,
    Location,
    OrderItem,
    OrderStatus,
    OtherService,
    PaymentMethod,
    WashService,
)
from tokens import decode_token

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("laundry")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            database.ensure_indexes()
        except Exception as e:
            logger.error("Could not create indexes: %s", e)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
    yield


app = FastAPI(title="Laundry Marketplace API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Errors -----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# ----------------------- Utils -----------------------
security = HTTPBearer(auto_error=False)


def collection(name: str):
    return database.get_db()[name]


def get_token_payload(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Access denied, token missing")
    payload = decode_token(credentials.credentials)
    if not payload.get("user_id"):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return payload


def get_current_user(payload: dict = Depends(get_token_payload)):
    try:
        user = collection("user").find_one({"_id": oid(payload["user_id"])})
    except HTTPException:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return serialize_doc(user)


# ----------------------- Models -----------------------
class EmailBody(BaseModel):
    email: Optional[str] = None


class OtpVerifyBody(EmailBody):
    code: Optional[str] = None


class SignupBody(EmailBody):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    verification_id: Optional[str] = None


class RegisterGoogleUserBody(EmailBody):
    display_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    google_id: Optional[str] = None


class GoogleLoginBody(BaseModel):
    access_token: str = Field(..., min_length=1)
    role: str = "user"


class GoogleRegisterBody(BaseModel):
    temp_token: str = Field(..., min_length=1)
    display_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    role: str = "user"


class OrderCreateBody(BaseModel):
    shop_id: str
    items: List[OrderItem]
    payment_method: PaymentMethod = "cash"


class StatusUpdateBody(BaseModel):
    status: OrderStatus


class RiderAcceptBody(BaseModel):
    rider_id: str


class MerchantAcceptBody(BaseModel):
    shop_id: str


class MerchantStatusBody(BaseModel):
    shop_id: str
    status: str


class ShopUpdateBody(BaseModel):
    name: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5, allow_inf_nan=False)
    review_count: Optional[int] = None
    price_level: Optional[int] = Field(None, ge=1, le=4)
    delivery_fee: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    delivery_time: Optional[int] = None
    image_url: Optional[str] = None
    location: Optional[Location] = None
    wash_services: Optional[List[WashService]] = None
    dry_services: Optional[List[DryService]] = None
    ironing_services: Optional[List[IroningService]] = None
    folding_services: Optional[List[FoldingService]] = None
    other_services: Optional[List[OtherService]] = None


class AmountBody(BaseModel):
    amount: float = Field(..., allow_inf_nan=False)


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Laundry Marketplace API running"}


@app.get("/api/health")
def health():
    return {"status": "OK", "message": "Server is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/request-otp")
def request_otp(body: EmailBody):
    otp.request_otp(body.email)
    return {"success": True}


@app.post("/api/auth/verify-otp")
def verify_otp(body: OtpVerifyBody):
    verification_id = otp.verify_otp(body.email, body.code)
    return {"success": True, "verification_id": verification_id}


@app.post("/api/auth/signup")
def signup(body: SignupBody):
    doc = otp.complete_signup(body.email, body.phone, body.verification_id,
                              first_name=body.first_name, last_name=body.last_name)
    return {"success": True, "signup": doc}


@app.post("/api/auth/check-user")
def check_user(body: EmailBody):
    return google_auth.check_user(otp.normalize_email(body.email))


@app.post("/api/auth/register-google-user")
def register_google_user(body: RegisterGoogleUserBody):
    user = google_auth.register_google_user(
        otp.normalize_email(body.email),
        display_name=body.display_name,
        phone=body.phone,
        address=body.address,
        google_id=body.google_id,
    )
    return {"success": True, "user": user}


# ----------------------- Google -----------------------
@app.post("/api/google/login")
def google_login(body: GoogleLoginBody):
    return google_auth.login(body.access_token, body.role)


@app.post("/api/google/register")
def google_register(body: GoogleRegisterBody):
    return google_auth.register(body.temp_token, display_name=body.display_name,
                                phone=body.phone, address=body.address, role=body.role)


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user=Depends(get_current_user)):
    order = orders.create_order(user, body.shop_id, body.items, body.payment_method)
    return {"success": True, "order": order, "message": "Order created successfully!"}


@app.get("/api/orders/active")
def get_active_order(user=Depends(get_current_user)):
    order = orders.get_active_order(user["id"])
    return {"has_active_order": order is not None, "order": order}


@app.get("/api/orders/history")
def get_order_history(user=Depends(get_current_user)):
    return {"orders": orders.get_order_history(user["id"])}


@app.get("/api/orders/pending")
def get_pending_orders():
    return {"orders": orders.get_pending_orders()}


@app.get("/api/orders/merchant/{shop_id}/pending")
def get_merchant_pending_orders(shop_id: str):
    return {"orders": orders.get_merchant_orders(shop_id, orders.MERCHANT_PENDING)}


@app.get("/api/orders/merchant/{shop_id}/current")
def get_merchant_current_orders(shop_id: str):
    return {"orders": orders.get_merchant_orders(shop_id, orders.MERCHANT_CURRENT)}


@app.get("/api/orders/merchant/{shop_id}/history")
def get_merchant_order_history(shop_id: str):
    return {"orders": orders.get_merchant_orders(shop_id, orders.MERCHANT_HISTORY)}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user)):
    return {"success": True, "order": orders.get_order(order_id, user)}


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusUpdateBody, user=Depends(get_current_user)):
    return {"success": True, "order": orders.update_order_status(order_id, user["id"], body.status)}


@app.post("/api/orders/{order_id}/rider-accept")
def rider_accept_order(order_id: str, body: RiderAcceptBody):
    return {"success": True, "order": orders.rider_accept_order(order_id, body.rider_id)}


@app.post("/api/orders/{order_id}/merchant-accept")
def merchant_accept_order(order_id: str, body: MerchantAcceptBody):
    return {"success": True, "order": orders.merchant_accept_order(order_id, body.shop_id)}


@app.patch("/api/orders/{order_id}/merchant-status")
def merchant_update_order_status(order_id: str, body: MerchantStatusBody):
    order = orders.merchant_update_order_status(order_id, body.shop_id, body.status)
    return {"success": True, "order": order}


# ----------------------- Shops -----------------------
@app.get("/api/shops")
def list_shops(type: Optional[str] = None, rating: Optional[float] = None, price: Optional[int] = None,
               delivery: Optional[str] = None):
    filt = {}
    if type:
        filt["type"] = type
    if rating is not None:
        filt["rating"] = {"$gte": rating}
    if price is not None:
        filt["price_level"] = price
    if delivery and delivery != "Any":
        digits = re.sub(r"\D", "", delivery)
        if digits:
            filt["delivery_fee"] = {"$lte": int(digits)}
    items = get_documents("shop", filt, sort=[("rating", -1)])
    return [serialize_doc(i) for i in items]


@app.get("/api/shops/{shop_id}")
def get_shop(shop_id: str):
    shop = collection("shop").find_one({"_id": oid(shop_id)})
    if not shop:
        raise HTTPException(status_code=404, detail="Shop not found")
    return serialize_doc(shop)


@app.put("/api/shops/{shop_id}")
def update_shop(shop_id: str, body: ShopUpdateBody):
    update = body.model_dump(exclude_none=True)
    if not update:
        raise HTTPException(status_code=400, detail="Nothing to update")
    update["updated_at"] = datetime.now(timezone.utc)
    res = collection("shop").update_one({"_id": oid(shop_id)}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Shop not found")
    logger.info("Updated shop %s: %s", shop_id, sorted(k for k in update if k != "updated_at"))
    return serialize_doc(collection("shop").find_one({"_id": oid(shop_id)}))


@app.get("/api/shops/{shop_id}/balance")
def get_shop_balance(shop_id: str):
    return {"success": True, "balance": wallet.get_balance("shop", shop_id)}


@app.get("/api/shops/{shop_id}/balance/transactions")
def get_shop_transactions(shop_id: str):
    wallet.get_balance("shop", shop_id)
    return {"transactions": [serialize_doc(t) for t in wallet.history("shop", shop_id)]}


@app.post("/api/shops/{shop_id}/balance/deposit")
def deposit_balance(shop_id: str, body: AmountBody):
    return {"success": True, "balance": wallet.deposit(shop_id, body.amount)}


@app.post("/api/shops/{shop_id}/balance/withdraw")
def withdraw_balance(shop_id: str, body: AmountBody):
    return {"success": True, "balance": wallet.withdraw(shop_id, body.amount)}


# ----------------------- Wallet -----------------------
@app.get("/api/wallet/balance")
def get_user_balance(user=Depends(get_current_user)):
    return {"balance": user.get("balance", 0)}


@app.get("/api/wallet/transactions")
def get_user_transactions(user=Depends(get_current_user)):
    return {"transactions": [serialize_doc(t) for t in wallet.history("user", user["id"])]}


# ----------------------- Riders -----------------------
@app.get("/api/riders/random/id")
def get_random_rider_id():
    count = collection("rider").count_documents({})
    if count == 0:
        raise HTTPException(status_code=404, detail="No riders found")
    rider = next(collection("rider").find({}, {"_id": 1}).skip(random.randrange(count)).limit(1))
    return {"rider_id": str(rider["_id"])}


@app.get("/api/riders/{rider_id}")
def get_rider(rider_id: str):
    rider = collection("rider").find_one({"_id": oid(rider_id)})
    if not rider:
        raise HTTPException(status_code=404, detail="Rider not found")
    return serialize_doc(rider)


# ----------------------- Chat -----------------------
@app.get("/api/chat/messages")
def get_messages(rider_id: Optional[str] = None, shop_id: Optional[str] = None):
    if not rider_id:
        raise HTTPException(status_code=400, detail="rider_id is required")
    filt = {"rider_id": rider_id}
    if shop_id:
        filt["shop_id"] = shop_id
    items = get_documents("chatmessage", filt, sort=[("created_at", 1), ("_id", 1)])
    return [serialize_doc(i) for i in items]


@app.post("/api/chat/messages", status_code=201)
def create_message(body: ChatMessageSchema):
    mid = create_document("chatmessage", body)
    return serialize_doc(collection("chatmessage").find_one({"_id": oid(mid)}))


# ----------------------- Seed Demo Data -----------------------
@app.post("/seed")
def seed_demo():
    if collection("shop").count_documents({}) > 0:
        return {"seeded": False, "message": "Shops already exist"}
    seed.seed_shops()
    seed.seed_riders()
    if collection("user").count_documents({}) == 0:
        seed.seed_users()
    return {"seeded": True, "shops": collection("shop").count_documents({})}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
