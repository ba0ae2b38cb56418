"""
Portfolio data models.

Records are the versioned rows of the ``portfolio_data`` table. Their
``value`` is a free-form JSON document; the request models below validate
what the HTTP layer accepts before it reaches the domain functions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordType(str, Enum):
    """Closed set of entity kinds stored in the portfolio table."""
    PROFILE = "profile"
    SKILL = "skill"
    EXPERIENCE = "experience"
    ACHIEVEMENT = "achievement"
    PROJECT = "project"
    PROJECT_TECH = "project_tech"
    PROJECT_IMAGE = "project_image"

    @classmethod
    def from_key(cls, key: str) -> "RecordType":
        """Read the entity kind encoded in a store key (``skill:<id>`` -> SKILL)."""
        return cls(key.split(":", 1)[0])


PROFILE_KEY = "profile"


def skill_key(skill_id: str) -> str:
    return f"skill:{skill_id}"


def experience_key(experience_id: str) -> str:
    return f"experience:{experience_id}"


def achievement_key(achievement_id: str) -> str:
    return f"achievement:{achievement_id}"


def project_key(project_id: str) -> str:
    return f"project:{project_id}"


def project_tech_key(project_id: str, technology: str) -> str:
    return f"project_tech:{project_id}:{technology}"


def project_image_key(image_id: str) -> str:
    return f"project_image:{image_id}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


@dataclass
class Record:
    """One versioned row of the portfolio table."""
    key: str
    type: RecordType
    value: Dict[str, Any]
    version: int = 1
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "type": self.type.value,
            "value": self.value,
            "version": self.version,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class PortfolioItem:
    """A type-tagged value as served by the cache or a bulk store read."""
    key: str
    type: RecordType
    value: Dict[str, Any]


@dataclass(frozen=True)
class CacheEntry:
    """Cached copy of an active record's value with its explicit type tag."""
    type: RecordType
    value: Dict[str, Any]


# ---------------------------------------------------------------------------
# HTTP request / response models
# ---------------------------------------------------------------------------

class ProfileUpdateRequest(BaseModel):
    """Request model for replacing the profile."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, description="Display name")
    title: str = Field(..., min_length=1, description="Professional title")
    tagline: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    github_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    resume_url: Optional[str] = None
    profile_image_url: Optional[str] = None


class SkillCreateRequest(BaseModel):
    """Request model for creating a skill."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, description="language, framework, tool, database")
    proficiency: Optional[int] = Field(None, ge=1, le=5)
    icon_name: Optional[str] = None
    years_experience: Optional[float] = None
    is_featured: bool = False
    sort_order: Optional[int] = Field(None, ge=0)


class SkillUpdateRequest(BaseModel):
    """Request model for updating a skill; unset fields are left untouched."""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    proficiency: Optional[int] = Field(None, ge=1, le=5)
    icon_name: Optional[str] = None
    years_experience: Optional[float] = None
    is_featured: Optional[bool] = None
    sort_order: Optional[int] = Field(None, ge=0)


class AchievementInput(BaseModel):
    """One achievement in a replace-all achievement list."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    description: str = Field(..., min_length=1)
    icon_name: Optional[str] = None
    metrics: Optional[str] = None
    sort_order: Optional[int] = Field(None, ge=0)


class ExperienceCreateRequest(BaseModel):
    """Request model for creating an experience."""
    model_config = ConfigDict(extra="allow")

    company: str = Field(..., min_length=1)
    position: str = Field(..., min_length=1)
    start_date: str
    end_date: Optional[str] = None
    location: Optional[str] = None
    company_logo_url: Optional[str] = None
    description: Optional[str] = None
    sort_order: int = Field(0, ge=0)
    achievements: List[AchievementInput] = Field(default_factory=list)


class ExperienceUpdateRequest(BaseModel):
    """Request model for updating an experience.

    ``achievements``, when present, replaces the whole achievement list.
    """
    model_config = ConfigDict(extra="allow")

    company: Optional[str] = Field(None, min_length=1)
    position: Optional[str] = Field(None, min_length=1)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    location: Optional[str] = None
    company_logo_url: Optional[str] = None
    description: Optional[str] = None
    sort_order: Optional[int] = Field(None, ge=0)
    achievements: Optional[List[AchievementInput]] = None


class ProjectImageInput(BaseModel):
    """Request model for a project gallery image."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    image_url: str = Field(..., min_length=1)
    alt_text: Optional[str] = None
    caption: Optional[str] = None
    sort_order: Optional[int] = Field(None, ge=0)


class ProjectImageUpdateRequest(BaseModel):
    """Request model for updating a project image."""
    model_config = ConfigDict(extra="allow")

    image_url: Optional[str] = Field(None, min_length=1)
    alt_text: Optional[str] = None
    caption: Optional[str] = None
    sort_order: Optional[int] = Field(None, ge=0)


class ProjectStatus(str, Enum):
    """Publication states of a project."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ProjectCreateRequest(BaseModel):
    """Request model for creating a project."""
    model_config = ConfigDict(extra="allow")

    title: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    featured_image_url: Optional[str] = None
    demo_url: Optional[str] = None
    github_url: Optional[str] = None
    publication_url: Optional[str] = None
    status: ProjectStatus = ProjectStatus.PUBLISHED
    is_featured: bool = False
    sort_order: int = Field(0, ge=0)
    technologies: List[str] = Field(default_factory=list)
    images: List[ProjectImageInput] = Field(default_factory=list)


class ProjectUpdateRequest(BaseModel):
    """Request model for updating a project.

    ``technologies`` and ``images``, when present, replace the stored sets.
    """
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = Field(None, min_length=1)
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    featured_image_url: Optional[str] = None
    demo_url: Optional[str] = None
    github_url: Optional[str] = None
    publication_url: Optional[str] = None
    status: Optional[ProjectStatus] = None
    is_featured: Optional[bool] = None
    sort_order: Optional[int] = Field(None, ge=0)
    technologies: Optional[List[str]] = None
    images: Optional[List[ProjectImageInput]] = None


class SortOrderEntry(BaseModel):
    """One ``{id, sort_order}`` pair of a bulk reorder."""
    id: str = Field(..., min_length=1)
    sort_order: int = Field(..., ge=0)


class BulkOrderRequest(BaseModel):
    """Request model for bulk reordering."""
    items: List[SortOrderEntry]


class PortfolioResponse(BaseModel):
    """Shaped portfolio document served to the public site."""
    profile: Optional[Dict[str, Any]] = None
    skills: List[Dict[str, Any]] = Field(default_factory=list)
    experiences: List[Dict[str, Any]] = Field(default_factory=list)
    projects: List[Dict[str, Any]] = Field(default_factory=list)


class CacheStatusResponse(BaseModel):
    """Cache administration status."""
    enabled: bool
    refresh_interval_seconds: int
    key_count: int
    state: str
    last_refresh_at: Optional[str] = None
    last_refresh_error: Optional[str] = None
