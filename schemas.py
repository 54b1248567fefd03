"""
Database Schemas for the CareerCoach marketplace

Each Pydantic model corresponds to a MongoDB collection. The collection name is the lowercase of the class name.

Example: class Coach -> collection "coach"

Monetary amounts on Booking and Payment are integer cents. Coach.hourlyRate is whole currency units.
"""
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr, model_validator
from datetime import datetime

Role = Literal["client", "coach", "admin"]
Provider = Literal["credentials", "google", "github"]
BookingStatus = Literal["pending", "confirmed", "cancelled", "completed"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]

SESSION_DURATIONS = (30, 60)

# bounds a coach may set on their own profile
MIN_HOURLY_RATE = 10
MAX_HOURLY_RATE = 1000
MAX_EXPERIENCE_YEARS = 50

# Core domain models

class User(BaseModel):
    email: EmailStr
    passwordHash: Optional[str] = Field(None, description="bcrypt hash, credentials provider only")
    name: str = Field(..., min_length=1)
    image: Optional[str] = None
    role: Role = "client"
    provider: Provider = "credentials"
    providerId: Optional[str] = None
    emailVerified: Optional[datetime] = None
    isActive: bool = True

    @model_validator(mode="after")
    def credentials_need_password(self):
        if self.provider == "credentials" and not self.passwordHash:
            raise ValueError("credentials users require a password hash")
        self.email = self.email.lower()
        return self

class Coach(BaseModel):
    name: str = Field(..., min_length=1)
    expertise: List[str] = Field(default_factory=list)
    hourlyRate: float = Field(..., ge=0)
    rating: float = Field(0, ge=0, le=5)
    bio: str
    image: str
    experience: int = Field(0, ge=0, description="Years of experience")
    certifications: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=lambda: ["English"])
    availableSlots: List[datetime] = Field(default_factory=list)
    userId: Optional[str] = Field(None, description="User account that owns this profile")

class Booking(BaseModel):
    userId: str = Field(..., description="Client email")
    coachId: str
    dateTime: datetime
    duration: Literal[30, 60]
    status: BookingStatus = "pending"
    totalAmount: int = Field(..., ge=0)
    paymentId: Optional[str] = None
    videoLink: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)

class Payment(BaseModel):
    bookingId: str
    coachId: str
    userId: str
    amount: int = Field(..., ge=0)
    platformFee: int = Field(0, ge=0)
    coachEarnings: int = Field(0, ge=0)
    status: PaymentStatus = "pending"
    paymentMethod: str = "stripe"
    externalReference: Optional[str] = None
    processedAt: Optional[datetime] = None

class Review(BaseModel):
    coachId: str
    userId: str
    userName: str = Field(..., min_length=1)
    userAvatar: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)
    sessionDate: datetime
    isVerified: bool = False

class NewsletterPreferences(BaseModel):
    careerTips: bool = True
    coachSpotlights: bool = True
    industryNews: bool = True
    weeklyDigest: bool = True

class NewsletterSubscriber(BaseModel):
    email: EmailStr
    firstName: Optional[str] = Field(None, max_length=50)
    lastName: Optional[str] = Field(None, max_length=50)
    isVerified: bool = False
    verificationToken: Optional[str] = None
    subscribedAt: Optional[datetime] = None
    verifiedAt: Optional[datetime] = None
    isActive: bool = False
    source: Literal["website", "social", "referral", "event", "other"] = "website"
    preferences: NewsletterPreferences = Field(default_factory=NewsletterPreferences)
    unsubscribedAt: Optional[datetime] = None

# Corporate (B2B) records

class Credits(BaseModel):
    total: int = Field(0, ge=0)
    used: int = Field(0, ge=0)
    remaining: int = Field(0, ge=0)

class CorporateAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    country: str = "United States"

class BillingInfo(BaseModel):
    billingEmail: Optional[str] = None
    paymentMethod: Optional[str] = None
    lastPayment: Optional[datetime] = None
    nextBilling: Optional[datetime] = None

class CorporateSettings(BaseModel):
    allowSelfBooking: bool = True
    requireApproval: bool = False
    maxSessionsPerEmployee: int = 10
    allowedCoachCategories: List[str] = Field(default_factory=list)

class CorporateAccount(BaseModel):
    companyName: str
    adminUserId: str
    contactEmail: EmailStr
    contactName: str
    phone: Optional[str] = None
    address: Optional[CorporateAddress] = None
    credits: Credits = Field(default_factory=Credits)
    employees: List[str] = Field(default_factory=list)
    subscriptionPlan: Literal["basic", "premium", "enterprise"] = "basic"
    isActive: bool = True
    billingInfo: Optional[BillingInfo] = None
    settings: CorporateSettings = Field(default_factory=CorporateSettings)

CompanySize = Literal["1-10", "11-50", "51-200", "201-500", "501-1000", "1000+"]
Region = Literal["North America", "Europe", "Asia Pacific", "Latin America", "Middle East & Africa", "Other"]
Service = Literal[
    "Leadership Development",
    "Employee Retention",
    "DEI Coaching",
    "Career Transition Support",
    "Executive Coaching",
    "Team Building",
    "Performance Coaching",
    "Custom Programs",
]
Budget = Literal["Under $5,000", "$5,000 - $15,000", "$15,000 - $50,000", "$50,000 - $100,000", "Over $100,000"]
Timeline = Literal["Immediate", "Within 1 month", "Within 3 months", "Within 6 months", "Future planning"]

class CorporateInquiry(BaseModel):
    companyName: str = Field(..., min_length=1, max_length=100)
    contactName: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    message: str = Field(..., min_length=1, max_length=2000)
    companySize: Optional[CompanySize] = None
    industry: Optional[str] = Field(None, max_length=100)
    region: Optional[Region] = None
    interestedServices: List[Service] = Field(default_factory=list)
    budget: Optional[Budget] = None
    timeline: Optional[Timeline] = None
    status: Literal["new", "contacted", "qualified", "proposal_sent", "closed_won", "closed_lost"] = "new"
    source: str = "corporate_website"
    followUpDate: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)

class CreditTransaction(BaseModel):
    accountId: str
    credits: int = Field(..., ge=1)
    amount: int = Field(..., ge=0, description="Price in cents")
    paymentMethod: str = "credit_card"
    status: Literal["completed", "failed"] = "completed"
    processedAt: datetime
