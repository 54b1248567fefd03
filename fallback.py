"""
Static data served by read endpoints while the database is unavailable.

Responses built from this module are marked with the X-Degraded-Mode header by
the handlers, so clients can tell them apart from live data.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

DEFAULT_COACH_IMAGE = "https://images.pexels.com/photos/774909/pexels-photo-774909.jpeg?auto=compress&cs=tinysrgb&w=400"

SAMPLE_COACHES: List[Dict[str, Any]] = [
    {
        "name": "Sarah Johnson",
        "expertise": ["Technology", "Leadership"],
        "hourlyRate": 150,
        "rating": 4.9,
        "bio": "Former Tech Director with 15+ years experience helping professionals advance their careers.",
        "image": DEFAULT_COACH_IMAGE,
        "experience": 15,
        "certifications": ["ICF Certified", "PMP"],
        "languages": ["English", "Spanish"],
    },
    {
        "name": "Michael Chen",
        "expertise": ["Finance", "Strategy"],
        "hourlyRate": 200,
        "rating": 4.8,
        "bio": "Investment banker turned executive coach, specializing in finance and strategic planning.",
        "image": "https://images.pexels.com/photos/2182970/pexels-photo-2182970.jpeg?auto=compress&cs=tinysrgb&w=400",
        "experience": 12,
        "certifications": ["CFA", "Executive Coach"],
        "languages": ["English", "Mandarin"],
    },
    {
        "name": "Emily Rodriguez",
        "expertise": ["Marketing", "Personal Branding"],
        "hourlyRate": 120,
        "rating": 4.7,
        "bio": "Marketing executive with expertise in personal branding and career transitions.",
        "image": "https://images.pexels.com/photos/1239291/pexels-photo-1239291.jpeg?auto=compress&cs=tinysrgb&w=400",
        "experience": 10,
        "certifications": ["Digital Marketing", "Brand Strategy"],
        "languages": ["English", "Portuguese"],
    },
    {
        "name": "Lisa Thompson",
        "expertise": ["Healthcare", "Career Transition"],
        "hourlyRate": 140,
        "rating": 4.8,
        "bio": "Healthcare executive specializing in career transitions and leadership development.",
        "image": "https://images.pexels.com/photos/1181686/pexels-photo-1181686.jpeg?auto=compress&cs=tinysrgb&w=400",
        "experience": 18,
        "certifications": ["Healthcare Management", "Life Coach"],
        "languages": ["English"],
    },
    {
        "name": "David Kim",
        "expertise": ["Engineering", "Product Management"],
        "hourlyRate": 180,
        "rating": 4.6,
        "bio": "Senior engineering manager helping technical professionals transition to leadership roles.",
        "image": "https://images.pexels.com/photos/2379004/pexels-photo-2379004.jpeg?auto=compress&cs=tinysrgb&w=400",
        "experience": 8,
        "certifications": ["Agile Certified", "Product Management"],
        "languages": ["English", "Korean"],
    },
    {
        "name": "James Wilson",
        "expertise": ["Sales", "Negotiation"],
        "hourlyRate": 160,
        "rating": 4.5,
        "bio": "Sales director with proven track record in building high-performing sales teams.",
        "image": "https://images.pexels.com/photos/2379005/pexels-photo-2379005.jpeg?auto=compress&cs=tinysrgb&w=400",
        "experience": 14,
        "certifications": ["Sales Management", "Negotiation Expert"],
        "languages": ["English", "French"],
    },
]

SUMMARY_FIELDS = ("name", "expertise", "hourlyRate", "rating", "image", "bio", "experience")


def coach_summaries(count: int) -> List[Dict[str, Any]]:
    items = []
    for i, coach in enumerate(SAMPLE_COACHES[:count], start=1):
        item = {"id": str(i)}
        item.update({k: coach[k] for k in SUMMARY_FIELDS})
        items.append(item)
    return items


def coach_page() -> Dict[str, Any]:
    coaches = coach_summaries(2)
    return {
        "coaches": coaches,
        "pagination": {
            "currentPage": 1,
            "totalPages": 1,
            "totalCoaches": len(coaches),
            "hasNextPage": False,
            "hasPrevPage": False,
        },
    }


def coach_detail(coach_id: str) -> Dict[str, Any]:
    coach = dict(SAMPLE_COACHES[0], id=coach_id, availableSlots=[])
    reviews = [
        {"id": "1", "coachId": coach_id, "userId": "user1", "userName": "Michael Chen", "rating": 5,
         "comment": "Sarah helped me transition from a senior developer to a tech lead.",
         "sessionDate": datetime(2024, 1, 15), "isVerified": True},
        {"id": "2", "coachId": coach_id, "userId": "user2", "userName": "Emily Rodriguez", "rating": 5,
         "comment": "Practical advice for my career pivot into product management.",
         "sessionDate": datetime(2024, 1, 10), "isVerified": True},
        {"id": "3", "coachId": coach_id, "userId": "user3", "userName": "David Kim", "rating": 4,
         "comment": "Great session on negotiation strategies.",
         "sessionDate": datetime(2024, 1, 5), "isVerified": True},
    ]
    return {
        "coach": coach,
        "reviews": reviews,
        "reviewStats": {
            "totalReviews": 3,
            "averageRating": 4.7,
            "ratingDistribution": {"5": 2, "4": 1, "3": 0, "2": 0, "1": 0},
        },
    }


def user_bookings(now: datetime) -> Dict[str, Any]:
    return {
        "bookings": [
            {
                "id": "1",
                "dateTime": now + timedelta(days=1),
                "duration": 60,
                "status": "confirmed",
                "totalAmount": 15000,
                "coach": {"id": "1", "name": "Sarah Johnson", "image": DEFAULT_COACH_IMAGE},
                "videoLink": "https://meet.google.com/mock-session-1",
            }
        ],
        "totalCompleted": 3,
    }


def coach_bookings(now: datetime) -> Dict[str, Any]:
    return {
        "bookings": [
            {
                "id": "1",
                "dateTime": now + timedelta(days=1),
                "duration": 60,
                "status": "confirmed",
                "totalAmount": 15000,
                "client": {"id": "1", "name": "John Smith", "email": "john.smith@careercoach.io"},
                "videoLink": "https://meet.google.com/mock-session-1",
                "notes": "Career transition discussion",
            }
        ]
    }


def coach_earnings(now: datetime) -> Dict[str, Any]:
    return {
        "totalEarnings": 245000,
        "monthlyEarnings": [
            {"month": "Jan", "earnings": 32000},
            {"month": "Feb", "earnings": 48000},
            {"month": "Mar", "earnings": 65000},
        ],
        "recentPayments": [
            {"id": "1", "amount": 15000, "coachEarnings": 13500, "platformFee": 1500, "status": "completed",
             "processedAt": now - timedelta(days=1), "clientName": "John Smith"},
        ],
    }


def coach_profile(name: Optional[str], email: str) -> Dict[str, Any]:
    return {
        "id": "mock-coach-id",
        "name": name or "Coach Name",
        "email": email,
        "bio": "Experienced career coach with 10+ years helping professionals achieve their goals.",
        "expertise": ["Leadership", "Career Transition", "Technology"],
        "hourlyRate": 150,
        "experience": 10,
        "certifications": ["ICF Certified", "Leadership Coach"],
        "languages": ["English", "Spanish"],
        "image": DEFAULT_COACH_IMAGE,
        "availableSlots": [],
        "rating": 4.8,
    }


def corporate_bookings(now: datetime, page: int) -> Dict[str, Any]:
    bookings = [
        {
            "id": "1",
            "dateTime": now + timedelta(days=1),
            "duration": 60,
            "status": "confirmed",
            "totalAmount": 15000,
            "employee": {"name": "John Doe", "email": "john.doe@techcorp.io"},
            "coach": {"id": "1", "name": "Sarah Johnson", "image": DEFAULT_COACH_IMAGE,
                      "expertise": ["Technology", "Leadership"]},
            "notes": "Leadership development session",
        }
    ]
    return {
        "bookings": bookings,
        "pagination": {
            "currentPage": page,
            "totalPages": 1,
            "totalBookings": len(bookings),
            "hasNextPage": False,
            "hasPrevPage": False,
        },
    }


def credit_history(now: datetime) -> Dict[str, Any]:
    return {
        "creditHistory": [
            {"id": "txn_001", "amount": 50000, "credits": 50, "paymentMethod": "credit_card",
             "processedAt": now - timedelta(days=7), "status": "completed"},
        ],
        "totalSpent": 50000,
        "totalCredits": 50,
    }
