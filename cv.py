"""
CV builder document model and export layout.

The PDF itself is rasterized in the browser. What the backend owns is the page
plan: given the height of the rendered CV, the export emits consecutive A4 slices
that cover the whole surface. Every slice is one full page tall except the last,
which holds the remainder.
"""
import math
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0
PIXELS_PER_MM = 96 / 25.4

SECTIONS = [
    "workExperience",
    "education",
    "skills",
    "projects",
    "certifications",
    "languages",
    "publications",
    "awards",
    "volunteering",
    "references",
    "hobbies",
]
DEFAULT_VISIBLE_SECTIONS = ["workExperience", "education", "skills"]


class Template(BaseModel):
    id: str
    name: str
    thumbnail: str


TEMPLATES = [
    Template(id="modern", name="Modern", thumbnail="/templates/modern.png"),
    Template(id="classic", name="Classic", thumbnail="/templates/classic.png"),
    Template(id="professional", name="Professional", thumbnail="/templates/professional.png"),
    Template(id="creative", name="Creative", thumbnail="/templates/creative.png"),
    Template(id="minimalist", name="Minimalist", thumbnail="/templates/minimalist.png"),
]


class PersonalInfo(BaseModel):
    firstName: str = ""
    lastName: str = ""
    title: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    website: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    twitter: Optional[str] = None
    summary: str = ""
    profileImage: Optional[str] = None


class WorkExperience(BaseModel):
    id: str
    company: str
    position: str
    location: str = ""
    startDate: str
    endDate: str = ""
    current: bool = False
    description: str = ""
    achievements: List[str] = Field(default_factory=list)


class Education(BaseModel):
    id: str
    institution: str
    degree: str
    field: str = ""
    location: str = ""
    startDate: str
    endDate: str = ""
    current: bool = False
    description: str = ""
    gpa: Optional[str] = None


class Skill(BaseModel):
    id: str
    name: str
    level: int = Field(3, ge=1, le=5)
    category: Optional[str] = None


class Project(BaseModel):
    id: str
    title: str
    description: str = ""
    startDate: str = ""
    endDate: str = ""
    current: bool = False
    url: Optional[str] = None
    technologies: List[str] = Field(default_factory=list)


class Certification(BaseModel):
    id: str
    name: str
    issuer: str
    date: str
    validUntil: Optional[str] = None
    url: Optional[str] = None


class Language(BaseModel):
    id: str
    name: str
    proficiency: Literal["Beginner", "Intermediate", "Advanced", "Fluent", "Native"]


class CVData(BaseModel):
    personalInfo: PersonalInfo = Field(default_factory=PersonalInfo)
    workExperience: List[WorkExperience] = Field(default_factory=list)
    education: List[Education] = Field(default_factory=list)
    skills: List[Skill] = Field(default_factory=list)
    projects: List[Project] = Field(default_factory=list)
    certifications: List[Certification] = Field(default_factory=list)
    languages: List[Language] = Field(default_factory=list)
    sectionOrder: List[str] = Field(default_factory=lambda: list(SECTIONS))
    visibleSections: List[str] = Field(default_factory=lambda: list(DEFAULT_VISIBLE_SECTIONS))

    def ordered_sections(self) -> List[str]:
        """Visible sections in display order."""
        visible = set(self.visibleSections)
        return [s for s in self.sectionOrder if s in visible]


class PageSlice(BaseModel):
    page: int
    offset: float
    height: float


def px_to_mm(pixels: float) -> float:
    return pixels / PIXELS_PER_MM


def paginate(content_height: float, page_height: float = A4_HEIGHT_MM) -> List[PageSlice]:
    """Split `content_height` (mm) into page slices of `page_height`."""
    if content_height <= 0:
        raise ValueError("content_height must be positive")
    if page_height <= 0:
        raise ValueError("page_height must be positive")
    # absorbs float noise such as 594.0000000001 on an exact two-page CV
    count = max(1, math.ceil(round(content_height / page_height, 6)))
    slices = []
    for i in range(count):
        offset = i * page_height
        height = page_height if i < count - 1 else content_height - offset
        slices.append(PageSlice(page=i + 1, offset=offset, height=min(height, page_height)))
    return slices
