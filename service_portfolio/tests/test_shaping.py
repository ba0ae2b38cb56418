"""
Unit tests for portfolio response shaping.
"""

import pytest

from shared.test_helpers import PortfolioDataFactory
from service_portfolio.app.portfolio.models import PortfolioItem, RecordType
from service_portfolio.app.portfolio.shaping import (
    attach_achievements, attach_project_details, select_featured_skills, shape_portfolio, sort_skills,
)


def _item(record_type, key, value):
    return PortfolioItem(key=key, type=record_type, value=value)


class TestSkillOrdering:
    """Test cases for skill ordering."""

    def test_ranked_order(self):
        """Proficiency desc with missing last, then sort_order, then name."""
        skills = PortfolioDataFactory.create_ranked_skills()

        ranked = select_featured_skills(skills)

        assert [skill["name"] for skill in ranked] == ["D", "C", "B", "A"]

    def test_only_featured_selected(self):
        skills = [
            {"name": "Go", "proficiency": 5, "is_featured": True},
            {"name": "Perl", "proficiency": 5, "is_featured": False},
            {"name": "Lua", "proficiency": 5},
        ]

        assert [skill["name"] for skill in select_featured_skills(skills)] == ["Go"]

    def test_name_breaks_ties(self):
        skills = [
            {"name": "Rust", "proficiency": 4, "sort_order": 2},
            {"name": "C", "proficiency": 4, "sort_order": 2},
        ]

        assert [skill["name"] for skill in sort_skills(skills)] == ["C", "Rust"]


class TestChildAttachment:
    """Test cases for attaching children to parents."""

    def test_achievements_grouped_and_sorted(self):
        experiences = [
            {"id": "e1", "sort_order": 1},
            {"id": "e2", "sort_order": 0},
        ]
        achievements = [
            {"id": "a1", "experience_id": "e1", "sort_order": 2},
            {"id": "a2", "experience_id": "e1", "sort_order": 0},
            {"id": "a3", "experience_id": "e2", "sort_order": 0},
            {"id": "orphan", "experience_id": "gone", "sort_order": 0},
        ]

        shaped = attach_achievements(experiences, achievements)

        assert [experience["id"] for experience in shaped] == ["e2", "e1"]
        assert [a["id"] for a in shaped[1]["achievements"]] == ["a2", "a1"]
        assert all(a["id"] != "orphan" for e in shaped for a in e["achievements"])

    def test_missing_sort_order_sorts_last(self):
        experiences = [{"id": "e1"}, {"id": "e2", "sort_order": 5}]

        shaped = attach_achievements(experiences, [])

        assert [experience["id"] for experience in shaped] == ["e2", "e1"]

    def test_project_technologies_and_images(self):
        projects = [{"id": "p1", "sort_order": 0}]
        technologies = [
            {"project_id": "p1", "technology": "go"},
            {"project_id": "p1", "technology": "postgres"},
            {"project_id": "p2", "technology": "rust"},
        ]
        images = [
            {"id": "i2", "project_id": "p1", "sort_order": 1},
            {"id": "i1", "project_id": "p1", "sort_order": 0},
        ]

        shaped = attach_project_details(projects, technologies, images)

        assert shaped[0]["technologies"] == ["go", "postgres"]
        assert [image["id"] for image in shaped[0]["images"]] == ["i1", "i2"]

    def test_inputs_not_mutated(self):
        experience = {"id": "e1", "sort_order": 0}

        attach_achievements([experience], [{"experience_id": "e1", "sort_order": 0}])

        assert "achievements" not in experience


class TestShapePortfolio:
    """Test cases for shape_portfolio."""

    @pytest.fixture
    def items(self):
        """Flat items covering every record type."""
        return [
            _item(RecordType.PROFILE, "profile", PortfolioDataFactory.create_profile()),
            _item(RecordType.SKILL, "skill:1", {"id": "1", "name": "Go", "proficiency": 5, "is_featured": True}),
            _item(RecordType.SKILL, "skill:2", {"id": "2", "name": "Perl", "proficiency": 1, "is_featured": False}),
            _item(RecordType.EXPERIENCE, "experience:e1", {"id": "e1", "sort_order": 0}),
            _item(RecordType.ACHIEVEMENT, "achievement:a1", {"id": "a1", "experience_id": "e1", "sort_order": 0}),
            _item(RecordType.PROJECT, "project:p1", {"id": "p1", "status": "published", "sort_order": 1}),
            _item(RecordType.PROJECT, "project:p2", {"id": "p2", "status": "draft", "sort_order": 0}),
            _item(RecordType.PROJECT_TECH, "project_tech:p1:go", {"project_id": "p1", "technology": "go"}),
            _item(RecordType.PROJECT_IMAGE, "project_image:i1", {"id": "i1", "project_id": "p1", "sort_order": 0}),
        ]

    def test_shape(self, items):
        shaped = shape_portfolio(items)

        assert shaped["profile"]["name"] == "Ada Example"
        assert [skill["name"] for skill in shaped["skills"]] == ["Go"]
        assert shaped["experiences"][0]["achievements"][0]["id"] == "a1"
        assert [project["id"] for project in shaped["projects"]] == ["p1"]
        assert shaped["projects"][0]["technologies"] == ["go"]
        assert shaped["projects"][0]["images"][0]["id"] == "i1"

    def test_empty(self):
        assert shape_portfolio([]) == {"profile": None, "skills": [], "experiences": [], "projects": []}
