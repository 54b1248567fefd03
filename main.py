import logging
import os
import re
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from math import ceil
from typing import Optional, List, Dict, Any, Literal

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

import fallback
from billing import (
    TransitionError,
    booking_amount,
    check_booking_transition,
    check_credit_purchase,
    check_payment_amount_edit,
    credit_cost,
    derive_credits,
    derive_payment,
)
from cv import A4_HEIGHT_MM, A4_WIDTH_MM, TEMPLATES, CVData, paginate, px_to_mm
from database import Database, DatabaseUnavailable, create_document, naive_utc, ping, to_dict, utcnow
from mailer import Mailer, MailDeliveryError
from schemas import (
    Booking,
    BookingStatus,
    Budget,
    Coach,
    CompanySize,
    CorporateAccount,
    CorporateInquiry,
    CreditTransaction,
    MAX_EXPERIENCE_YEARS,
    MAX_HOURLY_RATE,
    MIN_HOURLY_RATE,
    NewsletterSubscriber,
    Payment,
    PaymentStatus,
    Region,
    Review,
    SESSION_DURATIONS,
    Service,
    Timeline,
    User,
)
from security import (
    AuthenticationError,
    GoogleIdentity,
    SessionUser,
    authenticate_credentials,
    callback_secret_matches,
    get_session,
    hash_password,
    issue_session,
    require_role,
    sign_in_with_google,
)
from settings import (
    APP_NAME,
    DATABASE_NAME,
    DATABASE_RETRY_SECONDS,
    DATABASE_SOCKET_TIMEOUT_MS,
    DATABASE_TIMEOUT_MS,
    DATABASE_URL,
    LOG_LEVEL,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("careercoach.api")

ACTIVE_BOOKING_STATUSES = ["pending", "confirmed"]
DEGRADED_HEADER = "X-Degraded-Mode"
COACH_SUMMARY = {field: 1 for field in fallback.SUMMARY_FIELDS}
MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.database.close()


# App setup
app = FastAPI(title=f"{APP_NAME} API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.database = Database(
    DATABASE_URL,
    DATABASE_NAME,
    timeout_ms=DATABASE_TIMEOUT_MS,
    socket_timeout_ms=DATABASE_SOCKET_TIMEOUT_MS,
    retry_after=DATABASE_RETRY_SECONDS,
)
app.state.mailer = Mailer()


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


# Error handling
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(DatabaseUnavailable)
async def database_unavailable_handler(request: Request, exc: DatabaseUnavailable):
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Database not available"})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    if isinstance(exc, DuplicateKeyError):
        return JSONResponse(status_code=409, content={"detail": "Record already exists"})
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Database not available"})


# Utilities
def object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail="Invalid id")
    return ObjectId(value)


def degraded(response: Response, what: str, exc: Exception):
    logger.warning("Database operation failed for %s, returning fallback data: %s", what, exc)
    response.headers[DEGRADED_HEADER] = "database-unavailable"


def icontains(term: str) -> Dict[str, str]:
    return {"$regex": re.escape(term), "$options": "i"}


def is_valid_booking(doc: Dict[str, Any]) -> bool:
    return (
        isinstance(doc.get("coachId"), str)
        and isinstance(doc.get("userId"), str)
        and isinstance(doc.get("dateTime"), datetime)
        and doc.get("duration") in (30, 60)
        and isinstance(doc.get("status"), str)
        and isinstance(doc.get("totalAmount"), (int, float))
    )


def admin_account(db, session: SessionUser) -> Optional[Dict[str, Any]]:
    return db["corporateaccount"].find_one({"adminUserId": session.id, "isActive": True})


def linked_coach(db, session: SessionUser) -> Optional[Dict[str, Any]]:
    return db["coach"].find_one({"userId": session.id})


# Request/response models
class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class CoachUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    expertise: Optional[List[str]] = None
    hourlyRate: Optional[float] = Field(None, ge=MIN_HOURLY_RATE, le=MAX_HOURLY_RATE)
    rating: Optional[float] = Field(None, ge=0, le=5)
    bio: Optional[str] = None
    image: Optional[str] = None
    experience: Optional[int] = Field(None, ge=0, le=MAX_EXPERIENCE_YEARS)
    certifications: Optional[List[str]] = None
    languages: Optional[List[str]] = None
    availableSlots: Optional[List[datetime]] = None
    userId: Optional[str] = None


class BookingRequest(BaseModel):
    coachId: str
    dateTime: datetime
    duration: Literal[30, 60]
    notes: Optional[str] = Field(None, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    videoLink: Optional[str] = None


class PaymentUpdate(BaseModel):
    amount: Optional[int] = Field(None, ge=0)
    status: Optional[PaymentStatus] = None
    externalReference: Optional[str] = None


class ReviewRequest(BaseModel):
    coachId: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)
    sessionDate: datetime
    userAvatar: Optional[str] = None


class NewsletterRequest(BaseModel):
    email: EmailStr
    firstName: Optional[str] = Field(None, max_length=50)
    lastName: Optional[str] = Field(None, max_length=50)


class InquiryRequest(BaseModel):
    companyName: str = Field(..., min_length=1, max_length=100)
    contactName: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    message: str = Field(..., min_length=1, max_length=2000)
    companySize: Optional[CompanySize] = None
    industry: Optional[str] = Field(None, max_length=100)
    region: Optional[Region] = None
    interestedServices: List[Service] = []
    budget: Optional[Budget] = None
    timeline: Optional[Timeline] = None


class CorporateAccountRequest(BaseModel):
    companyName: str = Field(..., min_length=1)
    contactEmail: EmailStr
    contactName: str = Field(..., min_length=1)
    phone: Optional[str] = None
    employees: List[EmailStr] = []
    subscriptionPlan: Literal["basic", "premium", "enterprise"] = "basic"
    credits: int = Field(0, ge=0)


class CoachProfileUpdate(BaseModel):
    bio: Optional[str] = None
    expertise: Optional[List[str]] = None
    hourlyRate: Optional[float] = Field(None, ge=MIN_HOURLY_RATE, le=MAX_HOURLY_RATE)
    experience: Optional[int] = Field(None, ge=0, le=MAX_EXPERIENCE_YEARS)
    certifications: Optional[List[str]] = None
    languages: Optional[List[str]] = None


class CreditPurchase(BaseModel):
    credits: int
    paymentMethod: str = "credit_card"


class LayoutRequest(BaseModel):
    contentHeight: float = Field(..., gt=0)
    unit: Literal["mm", "px"] = "mm"
    pageHeight: float = Field(A4_HEIGHT_MM, gt=0)


class OutlineRequest(BaseModel):
    template: str
    cv: CVData


# Health
@app.get("/")
def root():
    return {"message": f"{APP_NAME} API running"}


@app.get("/test")
def test_database(database: Database = Depends(get_database)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": database.name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    status = ping(database)
    if status["connected"]:
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
        response["collections"] = status["collections"]
    elif database.configured:
        response["database"] = f"⚠️ Connection error: {status['error']}"
    return response


# Auth
@app.post("/api/auth/signup", status_code=201)
def signup(payload: SignupRequest, database: Database = Depends(get_database)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    email = payload.email.lower()
    db = database.get()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=409, detail="User with this email already exists")
    user = User(email=email, passwordHash=hash_password(payload.password), name=name, provider="credentials", role="client")
    user_id = create_document(db, "user", user)
    return {
        "message": "User created successfully",
        "user": {"id": user_id, "email": email, "name": name, "role": user.role},
    }


@app.post("/api/auth/login")
def login(payload: LoginRequest, database: Database = Depends(get_database)):
    db = database.get()
    try:
        user = authenticate_credentials(db, payload.email, payload.password)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return issue_session(user)


@app.post("/api/auth/google")
def google_sign_in(identity: GoogleIdentity, callback_secret: Optional[str] = Header(None, alias="X-Callback-Secret"),
                   database: Database = Depends(get_database)):
    # the OAuth callback layer verifies the Google identity and vouches for it with the shared secret
    if not callback_secret_matches(callback_secret):
        raise HTTPException(status_code=401, detail="Invalid callback secret")
    db = database.get()
    try:
        return sign_in_with_google(db, identity)
    except AuthenticationError:
        raise HTTPException(status_code=403, detail="Account is disabled")


@app.get("/api/auth/session")
def current_session(session: SessionUser = Depends(get_session)):
    return session


# Coaches
def coach_filter(expertise: Optional[str], min_price: Optional[float], max_price: Optional[float],
                 min_rating: Optional[float], search: Optional[str]) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if expertise and expertise != "all":
        filt["expertise"] = icontains(expertise)
    price_cond = {}
    if min_price is not None:
        price_cond["$gte"] = min_price
    if max_price is not None:
        price_cond["$lte"] = max_price
    if price_cond:
        filt["hourlyRate"] = price_cond
    if min_rating is not None:
        filt["rating"] = {"$gte": min_rating}
    if search:
        filt["$or"] = [
            {"name": icontains(search)},
            {"bio": icontains(search)},
            {"expertise": icontains(search)},
        ]
    return filt


@app.get("/api/coaches")
def list_coaches(
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    expertise: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=5),
    search: Optional[str] = None,
    database: Database = Depends(get_database),
):
    filt = coach_filter(expertise, min_price, max_price, min_rating, search)
    try:
        db = database.get()
        total = db["coach"].count_documents(filt)
        cursor = (
            db["coach"].find(filt, COACH_SUMMARY)
            .sort([("rating", -1), ("created_at", -1)])
            .skip((page - 1) * limit)
            .limit(limit)
        )
        coaches = [to_dict(c) for c in cursor]
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "coach listing", e)
        return fallback.coach_page()

    total_pages = ceil(total / limit)
    return {
        "coaches": coaches,
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalCoaches": total,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }


def top_coaches(database: Database, response: Response, count: int, what: str) -> List[Dict[str, Any]]:
    try:
        db = database.get()
        cursor = db["coach"].find({}, COACH_SUMMARY).sort([("rating", -1), ("created_at", -1)]).limit(count)
        return [to_dict(c) for c in cursor]
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, what, e)
        return fallback.coach_summaries(count)


@app.get("/api/coaches/featured")
def featured_coaches(response: Response, database: Database = Depends(get_database)):
    return top_coaches(database, response, 6, "featured coaches")


@app.get("/api/coaches/recommended")
def recommended_coaches(response: Response, session: SessionUser = Depends(get_session),
                        database: Database = Depends(get_database)):
    return top_coaches(database, response, 3, "recommended coaches")


def review_stats(reviews: List[Dict[str, Any]]) -> Dict[str, Any]:
    ratings = [r["rating"] for r in reviews]
    average = sum(ratings) / len(ratings) if ratings else 0
    return {
        "totalReviews": len(ratings),
        "averageRating": round(average, 1),
        "ratingDistribution": {str(star): ratings.count(star) for star in range(5, 0, -1)},
    }


@app.get("/api/coaches/{coach_id}")
def get_coach(coach_id: str, response: Response, database: Database = Depends(get_database)):
    oid = object_id(coach_id)
    try:
        db = database.get()
        coach = db["coach"].find_one({"_id": oid})
        reviews = []
        if coach:
            reviews = list(db["review"].find({"coachId": coach_id}).sort("created_at", -1).limit(20))
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "coach details", e)
        return fallback.coach_detail(coach_id)

    if not coach:
        raise HTTPException(status_code=404, detail="Coach not found")
    return {
        "coach": to_dict(coach),
        "reviews": [to_dict(r) for r in reviews],
        "reviewStats": review_stats(reviews),
    }


@app.post("/api/coaches", status_code=201)
def create_coach(payload: Coach, session: SessionUser = Depends(require_role("admin")),
                 database: Database = Depends(get_database)):
    db = database.get()
    coach_id = create_document(db, "coach", payload)
    return {"id": coach_id}


@app.put("/api/coaches/{coach_id}")
def update_coach(coach_id: str, payload: CoachUpdate, session: SessionUser = Depends(require_role("coach")),
                 database: Database = Depends(get_database)):
    oid = object_id(coach_id)
    db = database.get()
    coach = db["coach"].find_one({"_id": oid})
    if not coach:
        raise HTTPException(status_code=404, detail="Coach not found")
    update = payload.model_dump(exclude_none=True)
    if session.role != "admin":
        if coach.get("userId") != session.id:
            raise HTTPException(status_code=403, detail="Access denied")
        if "userId" in update:
            raise HTTPException(status_code=403, detail="Only admins can relink a coach profile")
    update["updated_at"] = utcnow()
    db["coach"].update_one({"_id": oid}, {"$set": update})
    return to_dict(db["coach"].find_one({"_id": oid}))


# Coach self-service
def profile_response(coach: Dict[str, Any], session: SessionUser) -> Dict[str, Any]:
    profile = to_dict(coach)
    profile["email"] = session.email
    return profile


@app.get("/api/coach/profile")
def coach_profile(response: Response, session: SessionUser = Depends(require_role("coach")),
                  database: Database = Depends(get_database)):
    try:
        db = database.get()
        coach = linked_coach(db, session)
        if coach is None and session.role == "coach":
            starter = Coach(
                name=session.name or session.email.split("@")[0],
                expertise=["Career Coaching"],
                hourlyRate=100,
                bio="Experienced career coach helping professionals achieve their goals.",
                image=fallback.DEFAULT_COACH_IMAGE,
                experience=1,
                userId=session.id,
            )
            coach_id = create_document(db, "coach", starter)
            coach = db["coach"].find_one({"_id": ObjectId(coach_id)})
            logger.info("Created starter coach profile %s for user %s", coach_id, session.id)
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "coach profile", e)
        return fallback.coach_profile(session.name, session.email)

    if coach is None:
        raise HTTPException(status_code=404, detail="Coach profile not found")
    return profile_response(coach, session)


@app.put("/api/coach/profile")
def update_coach_profile(payload: CoachProfileUpdate, session: SessionUser = Depends(require_role("coach")),
                         database: Database = Depends(get_database)):
    db = database.get()
    coach = linked_coach(db, session)
    if coach is None:
        raise HTTPException(status_code=404, detail="Coach profile not found")
    update = payload.model_dump(exclude_none=True)
    update["updated_at"] = utcnow()
    db["coach"].update_one({"_id": coach["_id"]}, {"$set": update})
    return {
        "message": "Profile updated successfully",
        "profile": profile_response(db["coach"].find_one({"_id": coach["_id"]}), session),
    }


# Bookings
@app.post("/api/bookings", status_code=201)
def create_booking(payload: BookingRequest, session: SessionUser = Depends(get_session),
                   database: Database = Depends(get_database)):
    coach_oid = object_id(payload.coachId)
    start = naive_utc(payload.dateTime)
    if start <= utcnow():
        raise HTTPException(status_code=400, detail="Cannot book a slot in the past")
    end = start + timedelta(minutes=payload.duration)

    db = database.get()
    coach = db["coach"].find_one({"_id": coach_oid})
    if not coach:
        raise HTTPException(status_code=404, detail="Coach not found")

    # Best effort: nothing stops two concurrent requests from both passing this check
    nearby = db["booking"].find({
        "coachId": payload.coachId,
        "status": {"$in": ACTIVE_BOOKING_STATUSES},
        "dateTime": {"$gt": start - timedelta(minutes=60), "$lt": end},
    })
    for other in nearby:
        duration = other.get("duration") if other.get("duration") in SESSION_DURATIONS else 60
        if other["dateTime"] + timedelta(minutes=duration) > start:
            raise HTTPException(status_code=409, detail="This time slot is already booked")

    amount = booking_amount(coach["hourlyRate"], payload.duration)
    booking = Booking(
        userId=session.email,
        coachId=payload.coachId,
        dateTime=start,
        duration=payload.duration,
        totalAmount=amount,
        notes=payload.notes,
    )
    booking_id = create_document(db, "booking", booking)

    payment = Payment(bookingId=booking_id, coachId=payload.coachId, userId=session.email, amount=amount)
    payment_id = create_document(db, "payment", derive_payment(payment.model_dump()))
    db["booking"].update_one({"_id": ObjectId(booking_id)}, {"$set": {"paymentId": payment_id}})

    return {
        "booking": to_dict(db["booking"].find_one({"_id": ObjectId(booking_id)})),
        "payment": to_dict(db["payment"].find_one({"_id": ObjectId(payment_id)})),
    }


@app.get("/api/bookings/slots")
def booked_slots(response: Response, coach_id: str = Query(..., alias="coachId"),
                 session: SessionUser = Depends(get_session), database: Database = Depends(get_database)):
    object_id(coach_id)
    try:
        db = database.get()
        cursor = db["booking"].find(
            {"coachId": coach_id, "status": {"$in": ACTIVE_BOOKING_STATUSES}, "dateTime": {"$gte": utcnow()}},
            {"dateTime": 1, "duration": 1},
        ).sort("dateTime", 1)
        slots = [{"dateTime": b["dateTime"], "duration": b.get("duration", 60)} for b in cursor]
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "booked slots", e)
        return {"bookedSlots": []}
    return {"bookedSlots": slots}


@app.get("/api/bookings/user")
def user_bookings(response: Response, session: SessionUser = Depends(get_session),
                  database: Database = Depends(get_database)):
    now = utcnow()
    try:
        db = database.get()
        docs = list(
            db["booking"].find({
                "userId": session.email,
                "status": {"$in": ACTIVE_BOOKING_STATUSES},
                "dateTime": {"$gte": now},
            }).sort("dateTime", 1).limit(10)
        )
        completed = db["booking"].count_documents({"userId": session.email, "status": "completed"})
        coach_ids = [ObjectId(d["coachId"]) for d in docs if is_valid_booking(d) and ObjectId.is_valid(d["coachId"])]
        coaches = {str(c["_id"]): c for c in db["coach"].find({"_id": {"$in": coach_ids}}, {"name": 1, "image": 1})}
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "user bookings", e)
        return fallback.user_bookings(now)

    bookings = []
    dropped = []
    for doc in docs:
        coach = coaches.get(doc["coachId"]) if is_valid_booking(doc) else None
        if coach is None:
            dropped.append(str(doc["_id"]))
            continue
        bookings.append({
            "id": str(doc["_id"]),
            "dateTime": doc["dateTime"],
            "duration": doc["duration"],
            "status": doc["status"],
            "totalAmount": doc["totalAmount"],
            "coach": {
                "id": str(coach["_id"]),
                "name": coach.get("name") or "Unknown Coach",
                "image": coach.get("image") or fallback.DEFAULT_COACH_IMAGE,
            },
            "videoLink": doc.get("videoLink"),
        })
    if dropped:
        logger.warning("Dropped %d malformed bookings for %s: %s", len(dropped), session.email, ", ".join(dropped))
    return {"bookings": bookings, "totalCompleted": completed}


@app.get("/api/bookings/coach")
def coach_bookings(response: Response, session: SessionUser = Depends(require_role("coach")),
                   database: Database = Depends(get_database)):
    now = utcnow()
    try:
        db = database.get()
        coach = linked_coach(db, session)
        docs, clients = [], {}
        if coach:
            docs = list(
                db["booking"].find({
                    "coachId": str(coach["_id"]),
                    "status": {"$in": ACTIVE_BOOKING_STATUSES},
                    "dateTime": {"$gte": now},
                }).sort("dateTime", 1).limit(20)
            )
            emails = list({d["userId"] for d in docs if isinstance(d.get("userId"), str)})
            clients = {u["email"]: u for u in db["user"].find({"email": {"$in": emails}}, {"name": 1, "email": 1})}
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "coach bookings", e)
        return fallback.coach_bookings(now)

    if not coach:
        raise HTTPException(status_code=404, detail="Coach profile not found")

    bookings = []
    dropped = []
    for doc in docs:
        if not is_valid_booking(doc):
            dropped.append(str(doc["_id"]))
            continue
        client = clients.get(doc["userId"])
        bookings.append({
            "id": str(doc["_id"]),
            "dateTime": doc["dateTime"],
            "duration": doc["duration"],
            "status": doc["status"],
            "totalAmount": doc["totalAmount"],
            "client": {
                "id": str(client["_id"]) if client else None,
                "name": client.get("name") if client else "Unknown Client",
                "email": doc["userId"],
            },
            "videoLink": doc.get("videoLink"),
            "notes": doc.get("notes") or "",
        })
    if dropped:
        logger.warning("Dropped %d malformed bookings for coach %s: %s", len(dropped), coach["_id"], ", ".join(dropped))
    return {"bookings": bookings}


@app.get("/api/bookings/corporate")
def corporate_bookings(
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    session: SessionUser = Depends(require_role("admin")),
    database: Database = Depends(get_database),
):
    try:
        db = database.get()
        account = admin_account(db, session)
        docs, total, employees, coaches = [], 0, {}, {}
        if account:
            filt = {"userId": {"$in": account.get("employees") or []}}
            total = db["booking"].count_documents(filt)
            docs = list(db["booking"].find(filt).sort("dateTime", -1).skip((page - 1) * limit).limit(limit))
            emails = list({d["userId"] for d in docs if isinstance(d.get("userId"), str)})
            employees = {u["email"]: u.get("name") for u in db["user"].find({"email": {"$in": emails}}, {"name": 1, "email": 1})}
            coach_ids = [ObjectId(d["coachId"]) for d in docs if is_valid_booking(d) and ObjectId.is_valid(d["coachId"])]
            coaches = {
                str(c["_id"]): c
                for c in db["coach"].find({"_id": {"$in": coach_ids}}, {"name": 1, "image": 1, "expertise": 1})
            }
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "corporate bookings", e)
        return fallback.corporate_bookings(utcnow(), page)

    if not account:
        raise HTTPException(status_code=404, detail="Corporate account not found")

    bookings = []
    dropped = []
    for doc in docs:
        if not is_valid_booking(doc):
            dropped.append(str(doc["_id"]))
            continue
        coach = coaches.get(doc["coachId"], {})
        bookings.append({
            "id": str(doc["_id"]),
            "dateTime": doc["dateTime"],
            "duration": doc["duration"],
            "status": doc["status"],
            "totalAmount": doc["totalAmount"],
            "employee": {"name": employees.get(doc["userId"]) or "Unknown Employee", "email": doc["userId"]},
            "coach": {
                "id": doc["coachId"],
                "name": coach.get("name") or "Unknown Coach",
                "image": coach.get("image") or fallback.DEFAULT_COACH_IMAGE,
                "expertise": coach.get("expertise") or [],
            },
            "notes": doc.get("notes") or "",
        })
    if dropped:
        logger.warning("Dropped %d malformed corporate bookings: %s", len(dropped), ", ".join(dropped))

    total_pages = ceil(total / limit)
    return {
        "bookings": bookings,
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalBookings": total,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }


@app.patch("/api/bookings/{booking_id}/status")
def update_booking_status(booking_id: str, payload: BookingStatusUpdate, session: SessionUser = Depends(get_session),
                          database: Database = Depends(get_database)):
    oid = object_id(booking_id)
    db = database.get()
    booking = db["booking"].find_one({"_id": oid})
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    if session.role != "admin":
        coach = linked_coach(db, session) if session.role == "coach" else None
        owns_as_coach = coach is not None and str(coach["_id"]) == booking.get("coachId")
        cancels_own = booking.get("userId") == session.email and payload.status == "cancelled"
        if not (owns_as_coach or cancels_own):
            raise HTTPException(status_code=403, detail="Access denied")

    try:
        changed = check_booking_transition(booking.get("status", "pending"), payload.status)
    except TransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    update: Dict[str, Any] = {}
    if changed:
        update["status"] = payload.status
    if payload.videoLink:
        update["videoLink"] = payload.videoLink
    if update:
        update["updated_at"] = utcnow()
        db["booking"].update_one({"_id": oid}, {"$set": update})
    return to_dict(db["booking"].find_one({"_id": oid}))


# Payments
def month_start(now: datetime, months_back: int) -> datetime:
    index = now.year * 12 + (now.month - 1) - months_back
    return datetime(index // 12, index % 12 + 1, 1)


@app.get("/api/payments/coach")
def coach_earnings(response: Response, session: SessionUser = Depends(require_role("coach")),
                   database: Database = Depends(get_database)):
    now = utcnow()
    try:
        db = database.get()
        coach = linked_coach(db, session)
        payments, clients = [], {}
        if coach:
            payments = list(db["payment"].find({"coachId": str(coach["_id"]), "status": "completed"}).sort("processedAt", -1))
            emails = list({p["userId"] for p in payments[:10] if isinstance(p.get("userId"), str)})
            clients = {u["email"]: u.get("name") for u in db["user"].find({"email": {"$in": emails}}, {"name": 1, "email": 1})}
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "coach earnings", e)
        return fallback.coach_earnings(now)

    if not coach:
        raise HTTPException(status_code=404, detail="Coach profile not found")

    since = month_start(now, 5)
    monthly: Dict[tuple, int] = {}
    for p in payments:
        processed = p.get("processedAt")
        if processed and processed >= since:
            key = (processed.year, processed.month)
            monthly[key] = monthly.get(key, 0) + p.get("coachEarnings", 0)

    return {
        "totalEarnings": sum(p.get("coachEarnings", 0) for p in payments),
        "monthlyEarnings": [
            {"year": year, "month": MONTH_NAMES[month - 1], "earnings": monthly[(year, month)]}
            for year, month in sorted(monthly)
        ],
        "recentPayments": [
            {
                "id": str(p["_id"]),
                "amount": p["amount"],
                "coachEarnings": p["coachEarnings"],
                "platformFee": p["platformFee"],
                "status": p["status"],
                "processedAt": p.get("processedAt"),
                "clientName": clients.get(p.get("userId")) or "Unknown Client",
            }
            for p in payments[:10]
        ],
    }


@app.patch("/api/payments/{payment_id}")
def update_payment(payment_id: str, payload: PaymentUpdate, session: SessionUser = Depends(require_role("admin")),
                   database: Database = Depends(get_database)):
    oid = object_id(payment_id)
    db = database.get()
    previous = db["payment"].find_one({"_id": oid})
    if not previous:
        raise HTTPException(status_code=404, detail="Payment not found")

    changes = payload.model_dump(exclude_none=True)
    if "amount" in changes:
        try:
            check_payment_amount_edit(previous, changes["amount"])
        except TransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))

    merged = {k: v for k, v in previous.items() if k != "_id"}
    merged.update(changes)
    updated = derive_payment(merged, previous)
    updated["updated_at"] = utcnow()
    db["payment"].update_one({"_id": oid}, {"$set": updated})

    if previous.get("status") != "completed" and updated["status"] == "completed" and ObjectId.is_valid(updated["bookingId"]):
        db["booking"].update_one(
            {"_id": ObjectId(updated["bookingId"]), "status": "pending"},
            {"$set": {"status": "confirmed", "paymentId": payment_id, "updated_at": utcnow()}},
        )
    return to_dict(db["payment"].find_one({"_id": oid}))


# Reviews
@app.post("/api/reviews", status_code=201)
def add_review(payload: ReviewRequest, session: SessionUser = Depends(require_role("client")),
               database: Database = Depends(get_database)):
    object_id(payload.coachId)
    db = database.get()
    has = db["booking"].find_one({"userId": session.email, "coachId": payload.coachId, "status": "completed"})
    if not has:
        raise HTTPException(status_code=403, detail="Not allowed to review")
    review = Review(
        coachId=payload.coachId,
        userId=session.email,
        userName=session.name or session.email.split("@")[0],
        userAvatar=payload.userAvatar,
        rating=payload.rating,
        comment=payload.comment.strip(),
        sessionDate=naive_utc(payload.sessionDate),
        isVerified=True,
    )
    return {"id": create_document(db, "review", review)}


# Newsletter
@app.post("/api/newsletter", status_code=201)
def subscribe_newsletter(payload: NewsletterRequest, response: Response, database: Database = Depends(get_database),
                         mailer: Mailer = Depends(get_mailer)):
    email = payload.email.lower()
    first_name = payload.firstName.strip() if payload.firstName else None
    last_name = payload.lastName.strip() if payload.lastName else None
    db = database.get()
    subscribers = db["newslettersubscriber"]
    token = secrets.token_urlsafe(32)

    existing = subscribers.find_one({"email": email})
    if existing:
        if existing.get("isVerified"):
            raise HTTPException(status_code=409, detail="Email is already subscribed to our newsletter")
        update = {"verificationToken": token, "updated_at": utcnow()}
        if first_name:
            update["firstName"] = first_name
        if last_name:
            update["lastName"] = last_name
        subscribers.update_one({"_id": existing["_id"]}, {"$set": update})
        try:
            mailer.send_verification_email(email, first_name or existing.get("firstName"), token)
        except MailDeliveryError:
            raise HTTPException(status_code=500, detail="Failed to send verification email. Please try again.")
        response.status_code = 200
        return {"message": "Verification email resent. Please check your inbox.", "email": email, "resent": True}

    subscriber = NewsletterSubscriber(email=email, firstName=first_name, lastName=last_name, verificationToken=token)
    subscriber_id = create_document(db, "newslettersubscriber", subscriber)
    try:
        mailer.send_verification_email(email, first_name, token)
    except MailDeliveryError:
        subscribers.delete_one({"_id": ObjectId(subscriber_id)})
        raise HTTPException(status_code=500, detail="Failed to send verification email. Please try again.")
    return {"message": "Please check your email to confirm your subscription.", "email": email, "resent": False}


@app.get("/api/newsletter/verify")
def verify_newsletter(token: Optional[str] = None, database: Database = Depends(get_database)):
    if not token:
        raise HTTPException(status_code=400, detail="Verification token is required")
    db = database.get()
    now = utcnow()
    subscriber = db["newslettersubscriber"].find_one_and_update(
        {"verificationToken": token, "isVerified": False},
        {
            "$set": {"isVerified": True, "isActive": True, "verifiedAt": now, "subscribedAt": now, "updated_at": now},
            "$unset": {"verificationToken": ""},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not subscriber:
        raise HTTPException(status_code=404, detail="Invalid or expired verification token")
    return {
        "success": True,
        "message": "Email verified successfully! Welcome to our newsletter.",
        "subscriber": {
            "email": subscriber["email"],
            "firstName": subscriber.get("firstName"),
            "verifiedAt": subscriber["verifiedAt"],
        },
    }


# Corporate
@app.post("/api/corporate/inquiry", status_code=201)
def corporate_inquiry(payload: InquiryRequest, database: Database = Depends(get_database)):
    company = payload.companyName.strip()
    email = payload.email.lower()
    db = database.get()
    recent = db["corporateinquiry"].find_one({
        "email": email,
        "companyName": {"$regex": f"^{re.escape(company)}$", "$options": "i"},
        "created_at": {"$gte": utcnow() - timedelta(hours=24)},
    })
    if recent:
        raise HTTPException(
            status_code=409,
            detail="An inquiry from this company and email was already submitted recently. Please wait 24 hours.",
        )
    inquiry = CorporateInquiry(
        companyName=company,
        contactName=payload.contactName.strip(),
        email=email,
        phone=payload.phone.strip() if payload.phone else None,
        message=payload.message.strip(),
        companySize=payload.companySize,
        industry=payload.industry.strip() if payload.industry else None,
        region=payload.region,
        interestedServices=payload.interestedServices,
        budget=payload.budget,
        timeline=payload.timeline,
    )
    inquiry_id = create_document(db, "corporateinquiry", inquiry)
    return {
        "success": True,
        "message": "Thank you for your inquiry! Our team will contact you within 24 hours.",
        "inquiry": {"id": inquiry_id, "companyName": inquiry.companyName, "contactName": inquiry.contactName, "email": email},
    }


@app.post("/api/corporate/account", status_code=201)
def create_corporate_account(payload: CorporateAccountRequest, session: SessionUser = Depends(require_role("admin")),
                             database: Database = Depends(get_database)):
    db = database.get()
    if db["corporateaccount"].find_one({"adminUserId": session.id}):
        raise HTTPException(status_code=409, detail="Corporate account already exists")
    account = CorporateAccount(
        companyName=payload.companyName.strip(),
        adminUserId=session.id,
        contactEmail=payload.contactEmail.lower(),
        contactName=payload.contactName.strip(),
        phone=payload.phone,
        employees=[e.lower() for e in payload.employees],
        subscriptionPlan=payload.subscriptionPlan,
        credits=derive_credits({"total": payload.credits, "used": 0}),
    )
    return {"id": create_document(db, "corporateaccount", account)}


@app.get("/api/corporate/account")
def corporate_account(session: SessionUser = Depends(require_role("admin")), database: Database = Depends(get_database)):
    db = database.get()
    account = admin_account(db, session)
    if not account:
        raise HTTPException(status_code=404, detail="Corporate account not found")
    account["credits"] = derive_credits(account.get("credits") or {})
    return to_dict(account)


@app.post("/api/corporate/credits")
def purchase_credits(payload: CreditPurchase, session: SessionUser = Depends(require_role("admin")),
                     database: Database = Depends(get_database)):
    try:
        check_credit_purchase(payload.credits)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    db = database.get()
    account = admin_account(db, session)
    if not account:
        raise HTTPException(status_code=404, detail="Corporate account not found")

    now = utcnow()
    billing = dict(account.get("billingInfo") or {}, lastPayment=now, paymentMethod=payload.paymentMethod)
    updated = db["corporateaccount"].find_one_and_update(
        {"_id": account["_id"]},
        {"$inc": {"credits.total": payload.credits}, "$set": {"billingInfo": billing, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    credits = derive_credits(updated.get("credits") or {})
    db["corporateaccount"].update_one({"_id": account["_id"]}, {"$set": {"credits.remaining": credits["remaining"]}})

    txn = CreditTransaction(
        accountId=str(account["_id"]),
        credits=payload.credits,
        amount=credit_cost(payload.credits),
        paymentMethod=payload.paymentMethod,
        processedAt=now,
    )
    txn_id = create_document(db, "credittransaction", txn)
    logger.info("Added %d credits to corporate account %s", payload.credits, account["_id"])
    return {
        "success": True,
        "message": f"Successfully added {payload.credits} credits",
        "credits": credits,
        "transaction": dict(txn.model_dump(), id=txn_id),
    }


@app.get("/api/corporate/credits")
def credit_history(response: Response, session: SessionUser = Depends(require_role("admin")),
                   database: Database = Depends(get_database)):
    try:
        db = database.get()
        account = admin_account(db, session)
        history = []
        if account:
            history = list(db["credittransaction"].find({"accountId": str(account["_id"])}).sort([("processedAt", -1), ("_id", -1)]))
    except (DatabaseUnavailable, PyMongoError) as e:
        degraded(response, "credit history", e)
        return fallback.credit_history(utcnow())

    if not account:
        raise HTTPException(status_code=404, detail="Corporate account not found")
    completed = [t for t in history if t.get("status") == "completed"]
    return {
        "creditHistory": [to_dict(t) for t in history],
        "totalSpent": sum(t.get("amount", 0) for t in completed),
        "totalCredits": sum(t.get("credits", 0) for t in completed),
    }


# CV builder
@app.get("/api/cv/templates")
def cv_templates():
    return TEMPLATES


@app.post("/api/cv/layout")
def cv_layout(payload: LayoutRequest):
    height = px_to_mm(payload.contentHeight) if payload.unit == "px" else payload.contentHeight
    pages = paginate(height, payload.pageHeight)
    return {"pageWidth": A4_WIDTH_MM, "pageHeight": payload.pageHeight, "pageCount": len(pages), "pages": pages}


@app.post("/api/cv/outline")
def cv_outline(payload: OutlineRequest):
    if payload.template not in {t.id for t in TEMPLATES}:
        raise HTTPException(status_code=400, detail="Unknown template")
    return {"template": payload.template, "sections": payload.cv.ordered_sections()}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
