"""
Pure functions that turn flat, type-tagged portfolio records into the nested
documents served to the site.

Missing ``sort_order`` and ``proficiency`` values sort after present ones.
Children whose parent is absent are dropped.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import PortfolioItem, RecordType, ProjectStatus


def _nulls_last(value: Optional[Any]) -> Tuple[bool, Any]:
    return (value is None, value if value is not None else 0)


def sort_order_key(item: Dict[str, Any]) -> Tuple[bool, Any]:
    return _nulls_last(item.get("sort_order"))


def sort_skills(skills: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Proficiency descending, then sort_order ascending, then name."""
    def key(skill: Dict[str, Any]):
        proficiency = skill.get("proficiency")
        return (
            proficiency is None,
            -proficiency if proficiency is not None else 0,
            sort_order_key(skill),
            skill.get("name") or "",
        )

    return sorted(skills, key=key)


def select_featured_skills(skills: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sort_skills(skill for skill in skills if skill.get("is_featured") is True)


def attach_achievements(
    experiences: Iterable[Dict[str, Any]],
    achievements: Iterable[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    by_experience: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
    for achievement in achievements:
        by_experience[achievement.get("experience_id")].append(achievement)

    shaped = [
        {**experience, "achievements": sorted(by_experience.get(experience.get("id"), []), key=sort_order_key)}
        for experience in experiences
    ]
    return sorted(shaped, key=sort_order_key)


def attach_project_details(
    projects: Iterable[Dict[str, Any]],
    technologies: Iterable[Dict[str, Any]],
    images: Iterable[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Attach technology names and ordered images to each project."""
    tech_by_project: Dict[Any, List[str]] = defaultdict(list)
    for tech in technologies:
        tech_by_project[tech.get("project_id")].append(tech.get("technology"))

    images_by_project: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
    for image in images:
        images_by_project[image.get("project_id")].append(image)

    shaped = [
        {
            **project,
            "technologies": list(tech_by_project.get(project.get("id"), [])),
            "images": sorted(images_by_project.get(project.get("id"), []), key=sort_order_key),
        }
        for project in projects
    ]
    return sorted(shaped, key=sort_order_key)


def group_by_type(items: Iterable[PortfolioItem]) -> Dict[RecordType, List[Dict[str, Any]]]:
    grouped: Dict[RecordType, List[Dict[str, Any]]] = defaultdict(list)
    for item in items:
        grouped[item.type].append(item.value)
    return grouped


def shape_portfolio(items: Iterable[PortfolioItem]) -> Dict[str, Any]:
    """Build ``{profile, skills, experiences, projects}`` from flat items."""
    grouped = group_by_type(items)

    profiles = grouped.get(RecordType.PROFILE, [])
    published = [
        project for project in grouped.get(RecordType.PROJECT, [])
        if project.get("status") == ProjectStatus.PUBLISHED.value
    ]

    return {
        "profile": profiles[0] if profiles else None,
        "skills": select_featured_skills(grouped.get(RecordType.SKILL, [])),
        "experiences": attach_achievements(
            grouped.get(RecordType.EXPERIENCE, []),
            grouped.get(RecordType.ACHIEVEMENT, []),
        ),
        "projects": attach_project_details(
            published,
            grouped.get(RecordType.PROJECT_TECH, []),
            grouped.get(RecordType.PROJECT_IMAGE, []),
        ),
    }
