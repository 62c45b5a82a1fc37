import logging
import os
import re
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

import auth
import lifecycle
import queries
from auth import current_user, require_admin
from config import settings
from database import (
    db, BOOKINGS, CART, FAVORITES, ORDERS, PRODUCTS, USERS,
    create_document, ensure_indexes, get_documents, serialize_document, to_object_id, utcnow,
)
from schemas import (
    Booking, BookingPayment, BookingRequest, CartAdd, CheckoutPayload, LoginPayload, Order,
    OrderItem, PLANS, Product, ProductUpdate, ProfileUpdate, QuantityChange, ResetConfirm,
    ResetRequest, SignupPayload, TIME_SLOTS, TokenResponse, TrackingUpdate, DELIVERY_FEES,
)

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.LOG_LEVEL.upper())
    ),
)
logger = structlog.get_logger(__name__)

os.makedirs(settings.UPLOAD_DIR, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    yield


app = FastAPI(title="Glow Beauty Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("database_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Database unavailable, please try again"})


# ----------------------------- Utils -----------------------------

def require_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")


def parse_id(value: str, what: str = "id") -> ObjectId:
    oid = to_object_id(value)
    if oid is None:
        raise HTTPException(status_code=400, detail=f"Invalid {what}")
    return oid


def get_product_or_404(product_id: str) -> Dict[str, Any]:
    prod = db[PRODUCTS].find_one({"_id": parse_id(product_id, "product id")})
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")
    return prod


def uid_of(user: Dict[str, Any]) -> str:
    return str(user["_id"])


def cart_state(user_id: str) -> Dict[str, Any]:
    items = [serialize_document(d) for d in get_documents(CART, {"user_id": user_id}, sort=[("created_at", ASCENDING)])]
    return {
        "items": items,
        "total": lifecycle.line_total(items),
        "count": sum(int(it["quantity"]) for it in items),
    }


def add_to_cart(user_id: str, prod: Dict[str, Any], quantity: int) -> None:
    now = utcnow()
    db[CART].update_one(
        {"user_id": user_id, "product_id": str(prod["_id"])},
        {
            "$inc": {"quantity": quantity},
            "$set": {"updated_at": now},
            "$setOnInsert": {
                "name": prod.get("name"),
                "price": float(prod.get("discounted_price", 0)),
                "image_url": prod.get("image_url"),
                "category": prod.get("category"),
                "created_at": now,
            },
        },
        upsert=True,
    )


def customer_order_view(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_document(doc)
    out["display_status"] = lifecycle.display_status(doc)
    return out


def admin_order_view(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = customer_order_view(doc)
    out["actions"] = lifecycle.available_actions(doc)
    out["total_mismatch"] = lifecycle.total_mismatch(doc)
    return out


REQUIRED_PRODUCT_FIELDS = ("name", "original_price", "discounted_price", "category", "quantity", "status")


def check_prices(original: float, discounted: float):
    if discounted > original:
        raise HTTPException(status_code=400, detail="Discounted price cannot be higher than original price")


# ----------------------------- Basic -----------------------------

@app.get("/")
def root():
    return {"name": "Glow Beauty Store", "status": "ok"}


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
        if db is not None:
            response["database"] = "✅ Available"
            response["collections"] = db.list_collection_names()[:10]
            response["connection_status"] = "Connected"
            response["database"] = "✅ Connected & Working"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# ----------------------------- Auth -----------------------------

@app.post("/api/auth/signup", response_model=TokenResponse, status_code=201)
def signup(payload: SignupPayload):
    require_db()
    auth.signup(payload.email, payload.password, payload.name)
    return auth.login(payload.email, payload.password)


@app.post("/api/auth/login", response_model=TokenResponse)
def login(payload: LoginPayload):
    require_db()
    return auth.login(payload.email, payload.password)


@app.post("/api/auth/logout")
def logout(user: dict = Depends(current_user)):
    auth.logout(user["token"])
    return {"ok": True}


@app.post("/api/auth/reset-password")
def reset_password(payload: ResetRequest):
    require_db()
    auth.request_password_reset(payload.email)
    return {"ok": True, "message": "If the account exists, a reset link has been sent."}


@app.post("/api/auth/reset-password/confirm")
def confirm_reset_password(payload: ResetConfirm):
    require_db()
    auth.confirm_password_reset(payload.token, payload.new_password)
    return {"ok": True}


@app.get("/api/auth/me")
def me(user: dict = Depends(current_user)):
    uid = uid_of(user)
    cart_count = sum(int(d.get("quantity", 1)) for d in db[CART].find({"user_id": uid}, {"quantity": 1}))
    return {
        **auth.public_user(user),
        "cart_items_count": cart_count,
        "favorites_count": db[FAVORITES].count_documents({"user_id": uid}),
    }


@app.patch("/api/auth/me")
def update_profile(payload: ProfileUpdate, user: dict = Depends(current_user)):
    changes = payload.model_dump(exclude_unset=True)
    if changes:
        changes["updated_at"] = utcnow()
        user = db[USERS].find_one_and_update(
            {"_id": user["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
    return auth.public_user(user)


# ----------------------------- Catalog -----------------------------

@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    q: Optional[str] = None,
    sort: str = Query(default="newest"),
    limit: int = Query(default=50, ge=1, le=200),
):
    require_db()
    docs = get_documents(
        PRODUCTS,
        queries.product_filter(category, q),
        limit=limit,
        sort=queries.sort_order(queries.PRODUCT_SORTS, sort, "newest"),
    )
    return [serialize_document(d) for d in docs]


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    require_db()
    return serialize_document(get_product_or_404(product_id))


@app.get("/api/categories")
def list_categories():
    require_db()
    seen: Dict[str, Dict[str, Any]] = {}
    for d in db[PRODUCTS].find({}, {"category": 1, "category_slug": 1}):
        slug = d.get("category_slug")
        if not slug:
            continue
        entry = seen.setdefault(slug, {"category": d.get("category"), "category_slug": slug, "count": 0})
        entry["count"] += 1
    return sorted(seen.values(), key=lambda c: c["category_slug"])


# ----------------------------- Cart -----------------------------

@app.get("/api/cart")
def get_cart(user: dict = Depends(current_user)):
    return cart_state(uid_of(user))


@app.post("/api/cart/items")
def add_cart_item(payload: CartAdd, user: dict = Depends(current_user)):
    prod = get_product_or_404(payload.product_id)
    add_to_cart(uid_of(user), prod, payload.quantity)
    return cart_state(uid_of(user))


@app.post("/api/cart/items/{item_id}/quantity")
def change_cart_quantity(item_id: str, payload: QuantityChange, user: dict = Depends(current_user)):
    uid = uid_of(user)
    oid = parse_id(item_id, "cart item id")
    item = db[CART].find_one({"_id": oid, "user_id": uid})
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    updated = None
    if item["quantity"] + payload.delta >= 1:
        # The guard keeps quantity >= 1 even if another session changed it meanwhile
        updated = db[CART].find_one_and_update(
            {"_id": oid, "user_id": uid, "quantity": {"$gte": 1 - payload.delta}},
            {"$inc": {"quantity": payload.delta}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    if updated is None:
        current = db[CART].find_one({"_id": oid, "user_id": uid}) or item
        return {"updated": False, "item": serialize_document(current), **cart_state(uid)}
    return {"updated": True, "item": serialize_document(updated), **cart_state(uid)}


@app.delete("/api/cart/items/{item_id}")
def remove_cart_item(item_id: str, user: dict = Depends(current_user)):
    uid = uid_of(user)
    db[CART].delete_one({"_id": parse_id(item_id, "cart item id"), "user_id": uid})
    return cart_state(uid)


@app.delete("/api/cart")
def clear_cart(user: dict = Depends(current_user)):
    uid = uid_of(user)
    db[CART].delete_many({"user_id": uid})
    return cart_state(uid)


# ----------------------------- Favorites -----------------------------

@app.get("/api/favorites")
def list_favorites(q: Optional[str] = None, sort: str = "recent", user: dict = Depends(current_user)):
    filt = {"user_id": uid_of(user), **queries.search_any(q, ["name", "category"])}
    sorting = list(queries.FAVORITE_SORTS.get(sort, queries.FAVORITE_SORTS["recent"]))
    items = [serialize_document(d) for d in get_documents(FAVORITES, filt, sort=sorting)]
    return {
        "items": items,
        "count": len(items),
        "total_value": round(sum(float(it.get("price", 0)) for it in items), 2),
    }


def _add_favorite(user_id: str, prod: Dict[str, Any]) -> None:
    now = utcnow()
    db[FAVORITES].update_one(
        {"user_id": user_id, "product_id": str(prod["_id"])},
        {"$setOnInsert": {
            "name": prod.get("name"),
            "image_url": prod.get("image_url"),
            "price": float(prod.get("discounted_price", 0)),
            "category": prod.get("category"),
            "added_at": now,
            "created_at": now,
            "updated_at": now,
        }},
        upsert=True,
    )


@app.post("/api/favorites/{product_id}")
def add_favorite(product_id: str, user: dict = Depends(current_user)):
    _add_favorite(uid_of(user), get_product_or_404(product_id))
    return {"product_id": product_id, "favorite": True}


@app.delete("/api/favorites/{product_id}")
def remove_favorite(product_id: str, user: dict = Depends(current_user)):
    res = db[FAVORITES].delete_one({"user_id": uid_of(user), "product_id": product_id})
    return {"product_id": product_id, "favorite": False, "removed": res.deleted_count > 0}


@app.post("/api/favorites/{product_id}/toggle")
def toggle_favorite(product_id: str, user: dict = Depends(current_user)):
    uid = uid_of(user)
    res = db[FAVORITES].delete_one({"user_id": uid, "product_id": product_id})
    if res.deleted_count:
        return {"product_id": product_id, "favorite": False}
    _add_favorite(uid, get_product_or_404(product_id))
    return {"product_id": product_id, "favorite": True}


@app.post("/api/favorites/{product_id}/move-to-cart")
def move_favorite_to_cart(product_id: str, user: dict = Depends(current_user)):
    uid = uid_of(user)
    prod = get_product_or_404(product_id)
    add_to_cart(uid, prod, 1)
    db[FAVORITES].delete_one({"user_id": uid, "product_id": product_id})
    return cart_state(uid)


# ----------------------------- Checkout and orders -----------------------------

def release_stock(items: List[Dict[str, Any]]) -> None:
    for it in items:
        oid = to_object_id(it["product_id"])
        if oid is None:
            continue
        db[PRODUCTS].update_one(
            {"_id": oid},
            {"$inc": {"quantity": int(it["quantity"])}, "$set": {"updated_at": utcnow()}},
        )


def reserve_stock(items: List[Dict[str, Any]]) -> None:
    """Decrement stock line by line; on any shortfall undo what was taken and raise 409."""
    reserved = []
    for it in items:
        res = db[PRODUCTS].update_one(
            {"_id": to_object_id(it["product_id"]), "quantity": {"$gte": int(it["quantity"])}},
            {"$inc": {"quantity": -int(it["quantity"])}, "$set": {"updated_at": utcnow()}},
        )
        if res.modified_count == 0:
            release_stock(reserved)
            raise HTTPException(status_code=409, detail=f"Insufficient stock for {it.get('name') or it['product_id']}")
        reserved.append(it)


@app.post("/api/checkout", status_code=201)
def checkout(data: CheckoutPayload, user: dict = Depends(current_user)):
    uid = uid_of(user)
    cart_items = get_documents(CART, {"user_id": uid}, sort=[("created_at", ASCENDING)])
    if not cart_items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    payment = data.payment
    if payment.status == "failed":
        logger.info("payment_rejected", user_id=uid, reference=payment.reference)
        raise HTTPException(status_code=402, detail="Payment was not approved")

    items = [
        OrderItem(
            product_id=it["product_id"],
            name=it.get("name") or "",
            price=float(it["price"]),
            quantity=int(it["quantity"]),
            image_url=it.get("image_url"),
        )
        for it in cart_items
    ]
    item_dicts = [i.model_dump() for i in items]
    subtotal = lifecycle.line_total(item_dicts)
    delivery_fee = DELIVERY_FEES[data.shipping_method]
    addr = data.shipping_address

    order = Order(
        order_number=f"BEAUTY-{str(ObjectId())[-8:].upper()}",
        user_id=uid,
        customer_name=f"{addr.first_name} {addr.last_name}",
        customer_email=addr.email,
        customer_phone=addr.phone,
        shipping_address=addr,
        items=items,
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        total_amount=round(subtotal + delivery_fee, 2),
        status="processing" if payment.status == "paid" else "pending",
        payment_status=payment.status,
        payment_method=payment.method,
        payment_reference=payment.reference,
        shipping_method=data.shipping_method,
    )

    reserve_stock(item_dicts)
    try:
        oid = create_document(ORDERS, order)
    except PyMongoError as e:
        release_stock(item_dicts)
        logger.error(
            "order_write_failed",
            user_id=uid,
            payment_status=payment.status,
            payment_reference=payment.reference,
            error=str(e),
        )
        raise

    db[CART].delete_many({"user_id": uid})
    logger.info("order_placed", order_id=oid, order_number=order.order_number, total=order.total_amount)
    return customer_order_view(db[ORDERS].find_one({"_id": ObjectId(oid)}))


@app.get("/api/orders")
def list_my_orders(status: Optional[str] = None, user: dict = Depends(current_user)):
    docs = get_documents(ORDERS, {"user_id": uid_of(user)}, sort=queries.ORDER_SORTS["newest"])
    orders = [customer_order_view(d) for d in docs]
    counts: Dict[str, int] = {"all": len(orders)}
    for o in orders:
        counts[o["display_status"]] = counts.get(o["display_status"], 0) + 1
    if status and status != "all":
        orders = [o for o in orders if o["display_status"] == status]
    return {"orders": orders, "counts": counts}


@app.get("/api/orders/{order_id}")
def get_my_order(order_id: str, user: dict = Depends(current_user)):
    doc = db[ORDERS].find_one({"_id": parse_id(order_id, "order id"), "user_id": uid_of(user)})
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    return customer_order_view(doc)


# ----------------------------- Consultations -----------------------------

@app.get("/api/plans")
def list_plans():
    return {"plans": [p.model_dump() for p in PLANS], "time_slots": TIME_SLOTS}


@app.post("/api/bookings", status_code=201)
def create_booking(payload: BookingRequest, user: dict = Depends(current_user)):
    plan = next((p for p in PLANS if p.id == payload.plan_id), None)
    if plan is None:
        raise HTTPException(status_code=400, detail="Unknown consultation plan")
    booking = Booking(
        user_id=uid_of(user),
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        consultation_type=payload.consultation_type,
        notes=payload.notes,
        plan=plan.title,
        price=plan.price,
        duration=plan.duration,
        date=payload.date,
        time=payload.time,
    )
    bid = create_document(BOOKINGS, booking)
    logger.info("booking_created", booking_id=bid, plan=plan.id)
    return serialize_document(db[BOOKINGS].find_one({"_id": ObjectId(bid)}))


def move_booking(booking: Dict[str, Any], target: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        lifecycle.check_booking_transition(booking["status"], target)
    except lifecycle.TransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    updated = db[BOOKINGS].find_one_and_update(
        {"_id": booking["_id"], "status": booking["status"]},
        {"$set": {"status": target, "updated_at": utcnow(), **(extra or {})}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=409, detail="Booking was changed by someone else; refresh and retry")
    logger.info("booking_status_changed", booking_id=str(booking["_id"]), old=booking["status"], new=target)
    return serialize_document(updated)


@app.post("/api/bookings/{booking_id}/payment")
def confirm_booking_payment(booking_id: str, payload: BookingPayment, user: dict = Depends(current_user)):
    booking = db[BOOKINGS].find_one({"_id": parse_id(booking_id, "booking id"), "user_id": uid_of(user)})
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return move_booking(booking, "confirmed", {"payment_status": "paid", "payment_reference": payload.reference})


@app.get("/api/bookings")
def list_my_bookings(user: dict = Depends(current_user)):
    docs = get_documents(BOOKINGS, {"user_id": uid_of(user)}, sort=[("created_at", -1)])
    return [serialize_document(d) for d in docs]


# ----------------------------- Admin: products -----------------------------

@app.get("/api/admin/products")
def admin_list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    sort: str = "newest",
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
    admin: dict = Depends(require_admin),
):
    filt = queries.search_any(q, ["name", "description"])
    if category and category.lower() != "all":
        filt["category_slug"] = category.lower()
    window = queries.page_window(db[PRODUCTS].count_documents(filt), page, per_page)
    docs = get_documents(
        PRODUCTS, filt, limit=per_page, skip=window.pop("skip"),
        sort=queries.sort_order(queries.PRODUCT_SORTS, sort, "newest"),
    )
    return {
        "items": [serialize_document(d) for d in docs],
        **window,
        "stats": {
            "total": db[PRODUCTS].count_documents({}),
            "in_stock": db[PRODUCTS].count_documents({"status": "In Stock"}),
            "low_stock": db[PRODUCTS].count_documents({"status": "Low Stock"}),
            "out_of_stock": db[PRODUCTS].count_documents({"status": "Out of Stock"}),
            "needs_restock": db[PRODUCTS].count_documents({"quantity": {"$lte": settings.LOW_STOCK_THRESHOLD}}),
        },
    }


@app.post("/api/admin/products", status_code=201)
def admin_create_product(p: Product, admin: dict = Depends(require_admin)):
    check_prices(p.original_price, p.discounted_price)
    doc = p.model_dump()
    doc["category_slug"] = lifecycle.slugify(p.category)
    pid = create_document(PRODUCTS, doc)
    logger.info("product_created", product_id=pid, name=p.name)
    return serialize_document(db[PRODUCTS].find_one({"_id": ObjectId(pid)}))


@app.patch("/api/admin/products/{product_id}")
def admin_update_product(product_id: str, changes: ProductUpdate, admin: dict = Depends(require_admin)):
    existing = get_product_or_404(product_id)
    upd = changes.model_dump(exclude_unset=True)
    for key in REQUIRED_PRODUCT_FIELDS:
        if key in upd and upd[key] is None:
            del upd[key]
    if "description" in upd and upd["description"] is None:
        upd["description"] = ""
    merged = {**existing, **upd}
    check_prices(float(merged["original_price"]), float(merged["discounted_price"]))
    if "category" in upd:
        upd["category_slug"] = lifecycle.slugify(upd["category"])
    upd["updated_at"] = utcnow()
    updated = db[PRODUCTS].find_one_and_update(
        {"_id": existing["_id"]}, {"$set": upd}, return_document=ReturnDocument.AFTER
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_document(updated)


@app.delete("/api/admin/products/{product_id}")
def admin_delete_product(product_id: str, admin: dict = Depends(require_admin)):
    res = db[PRODUCTS].delete_one({"_id": parse_id(product_id, "product id")})
    if not res.deleted_count:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("product_deleted", product_id=product_id)
    return {"ok": True}


@app.post("/api/admin/uploads", status_code=201)
async def admin_upload_image(file: UploadFile = File(...), admin: dict = Depends(require_admin)):
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are accepted")
    data = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Image is too large")
    ext = os.path.splitext(file.filename or "")[1].lower()
    if not re.fullmatch(r"\.[a-z0-9]{1,5}", ext):
        ext = ""
    name = f"{uuid.uuid4().hex}{ext}"
    with open(os.path.join(settings.UPLOAD_DIR, name), "wb") as fh:
        fh.write(data)
    logger.info("image_uploaded", name=name, size=len(data))
    return {"url": f"/uploads/{name}"}


# ----------------------------- Admin: orders -----------------------------

def get_order_or_404(order_id: str) -> Dict[str, Any]:
    doc = db[ORDERS].find_one({"_id": parse_id(order_id, "order id")})
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    return doc


def move_order(order: Dict[str, Any], target: str) -> Dict[str, Any]:
    try:
        lifecycle.check_transition(order["status"], target)
    except lifecycle.TransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    # Compare-and-set on the status we validated against
    updated = db[ORDERS].find_one_and_update(
        {"_id": order["_id"], "status": order["status"]},
        {"$set": {"status": target, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=409, detail="Order was changed by someone else; refresh and retry")
    logger.info("order_status_changed", order_id=str(order["_id"]), old=order["status"], new=target)
    return updated


@app.get("/api/admin/orders")
def admin_list_orders(
    q: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    sort: str = "newest",
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
    admin: dict = Depends(require_admin),
):
    filt = queries.order_filter(q, status, payment_status)
    window = queries.page_window(db[ORDERS].count_documents(filt), page, per_page)
    docs = get_documents(
        ORDERS, filt, limit=per_page, skip=window.pop("skip"),
        sort=queries.sort_order(queries.ORDER_SORTS, sort, "newest"),
    )
    return {"items": [admin_order_view(d) for d in docs], **window}


@app.get("/api/admin/orders/summary")
def admin_orders_summary(admin: dict = Depends(require_admin)):
    by_status = {s: db[ORDERS].count_documents({"status": s}) for s in lifecycle.ORDER_FLOW + ["cancelled"]}
    rows = list(db[ORDERS].aggregate([
        {"$match": {"status": {"$ne": "cancelled"}}},
        {"$group": {"_id": None, "revenue": {"$sum": "$total_amount"}}},
    ]))
    return {
        "total_orders": sum(by_status.values()),
        "by_status": by_status,
        "revenue": round(rows[0]["revenue"], 2) if rows else 0.0,
    }


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(order_id: str, admin: dict = Depends(require_admin)):
    return admin_order_view(get_order_or_404(order_id))


@app.post("/api/admin/orders/{order_id}/advance")
def admin_advance_order(order_id: str, admin: dict = Depends(require_admin)):
    order = get_order_or_404(order_id)
    target = lifecycle.next_status(order["status"])
    if target is None:
        raise HTTPException(status_code=409, detail=f"Order is already {order['status']}")
    return admin_order_view(move_order(order, target))


@app.post("/api/admin/orders/{order_id}/cancel")
def admin_cancel_order(order_id: str, admin: dict = Depends(require_admin)):
    order = get_order_or_404(order_id)
    updated = move_order(order, "cancelled")
    release_stock(order.get("items", []))
    return admin_order_view(updated)


@app.patch("/api/admin/orders/{order_id}/tracking")
def admin_set_tracking(order_id: str, payload: TrackingUpdate, admin: dict = Depends(require_admin)):
    order = get_order_or_404(order_id)
    updated = db[ORDERS].find_one_and_update(
        {"_id": order["_id"]},
        {"$set": {"tracking_number": payload.tracking_number.strip(), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return admin_order_view(updated)


@app.delete("/api/admin/orders/{order_id}")
def admin_delete_order(order_id: str, admin: dict = Depends(require_admin)):
    doc = db[ORDERS].find_one_and_delete({"_id": parse_id(order_id, "order id")})
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    # Units of an order that never completed go back on the shelf
    if doc.get("status") not in lifecycle.TERMINAL:
        release_stock(doc.get("items", []))
    logger.info("order_deleted", order_id=order_id, status=doc.get("status"), admin_id=uid_of(admin))
    return {"ok": True}


# ----------------------------- Admin: consultations -----------------------------

@app.get("/api/admin/bookings")
def admin_list_bookings(
    q: Optional[str] = None,
    status: Optional[str] = None,
    consultation_type: Optional[str] = None,
    admin: dict = Depends(require_admin),
):
    docs = get_documents(
        BOOKINGS, queries.booking_filter(q, status, consultation_type), sort=[("created_at", -1)]
    )
    rows = list(db[BOOKINGS].aggregate([
        {"$match": {"payment_status": "paid"}},
        {"$group": {"_id": None, "revenue": {"$sum": "$price"}}},
    ]))
    return {
        "items": [serialize_document(d) for d in docs],
        "stats": {
            "upcoming": db[BOOKINGS].count_documents({"status": {"$in": ["pending_payment", "confirmed"]}}),
            "completed": db[BOOKINGS].count_documents({"status": "completed"}),
            "cancelled": db[BOOKINGS].count_documents({"status": "cancelled"}),
            "revenue": round(rows[0]["revenue"], 2) if rows else 0.0,
        },
    }


def get_booking_or_404(booking_id: str) -> Dict[str, Any]:
    doc = db[BOOKINGS].find_one({"_id": parse_id(booking_id, "booking id")})
    if not doc:
        raise HTTPException(status_code=404, detail="Booking not found")
    return doc


@app.post("/api/admin/bookings/{booking_id}/complete")
def admin_complete_booking(booking_id: str, admin: dict = Depends(require_admin)):
    return move_booking(get_booking_or_404(booking_id), "completed")


@app.post("/api/admin/bookings/{booking_id}/cancel")
def admin_cancel_booking(booking_id: str, admin: dict = Depends(require_admin)):
    return move_booking(get_booking_or_404(booking_id), "cancelled")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
