"""
Test helper functions and factory methods for the Portfolio Access Layer.
"""

import uuid
from typing import Any, Dict, List, Optional


class PortfolioDataFactory:
    """Factory for creating portfolio test data."""

    @staticmethod
    def create_profile(**overrides) -> Dict[str, Any]:
        """Create a profile document."""
        profile = {
            "name": "Ada Example",
            "title": "Software Engineer",
            "tagline": "Builds things that stay up",
            "bio": "Backend engineer working on data services.",
            "location": "Remote",
            "email": "ada@example.com",
            "github_url": "https://github.com/ada-example",
        }
        profile.update(overrides)
        return profile

    @staticmethod
    def create_skill(name: str, skill_id: Optional[str] = None, **overrides) -> Dict[str, Any]:
        """Create a skill document."""
        skill = {
            "id": skill_id or str(uuid.uuid4()),
            "name": name,
            "category": "language",
            "proficiency": 3,
            "is_featured": True,
            "sort_order": 0,
        }
        skill.update(overrides)
        return skill

    @staticmethod
    def create_ranked_skills() -> List[Dict[str, Any]]:
        """Featured skills whose ranked order is D, C, B, A."""
        return [
            {"id": "skill-b", "name": "B", "category": "language", "proficiency": 3, "is_featured": True},
            {"id": "skill-a", "name": "A", "category": "language", "proficiency": None, "is_featured": True},
            {"id": "skill-c", "name": "C", "category": "language", "proficiency": 3, "sort_order": 1,
             "is_featured": True},
            {"id": "skill-d", "name": "D", "category": "language", "proficiency": 3, "sort_order": 0,
             "is_featured": True},
        ]

    @staticmethod
    def create_experience(experience_id: Optional[str] = None, achievements: Optional[List[str]] = None,
                          **overrides) -> Dict[str, Any]:
        """Create an experience document with achievement descriptions."""
        experience = {
            "id": experience_id or str(uuid.uuid4()),
            "company": "Example Corp",
            "position": "Backend Engineer",
            "start_date": "2021-03-01",
            "end_date": None,
            "location": "Remote",
            "sort_order": 0,
            "achievements": [
                {"description": description} for description in (achievements or [])
            ],
        }
        experience.update(overrides)
        return experience

    @staticmethod
    def create_project(slug: str, project_id: Optional[str] = None, technologies: Optional[List[str]] = None,
                       **overrides) -> Dict[str, Any]:
        """Create a project document."""
        project = {
            "id": project_id or str(uuid.uuid4()),
            "title": slug.replace("-", " ").title(),
            "slug": slug,
            "short_description": f"The {slug} project",
            "status": "published",
            "is_featured": False,
            "sort_order": 0,
            "technologies": list(technologies or []),
            "images": [],
        }
        project.update(overrides)
        return project


class TestEnvironment:
    """Test environment configuration."""

    __test__ = False

    @staticmethod
    def get_mock_config(cache_enabled: bool = False) -> Dict[str, Any]:
        """Settings overrides for a service running on the in-process store."""
        return {
            "env": "test",
            "log_level": "debug",
            "store_backend": "memory",
            "cache_enabled": cache_enabled,
            "cache_refresh_interval_seconds": 1800,
            "enable_tracing": False,
        }

