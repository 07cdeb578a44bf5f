"""
Safety Plan Sections

The fixed seven-item intervention checklist (Stanley-Brown safety plan)
that reranking reorders by relevance to the current clinical driver.
"""

from enum import IntEnum


class SafetyPlanSection(IntEnum):
    """Safety plan section, numbered as presented to the model."""

    WARNING_SIGNS = 1
    COPING_STRATEGIES = 2
    SOCIAL_DISTRACTIONS = 3
    SUPPORT_CONTACTS = 4
    PROFESSIONAL_HELP = 5
    LETHAL_MEANS_REDUCTION = 6
    REASONS_FOR_LIVING = 7

    @property
    def title(self) -> str:
        """Human-readable section title."""
        return _TITLES[self]

    @classmethod
    def all_numbers(cls) -> list[int]:
        """Section numbers in ascending order."""
        return [section.value for section in cls]


_TITLES: dict[SafetyPlanSection, str] = {
    SafetyPlanSection.WARNING_SIGNS: "Warning Signs",
    SafetyPlanSection.COPING_STRATEGIES: "Coping Strategies",
    SafetyPlanSection.SOCIAL_DISTRACTIONS: "Social Distractions",
    SafetyPlanSection.SUPPORT_CONTACTS: "Support Contacts",
    SafetyPlanSection.PROFESSIONAL_HELP: "Professional Help",
    SafetyPlanSection.LETHAL_MEANS_REDUCTION: "Lethal Means Reduction",
    SafetyPlanSection.REASONS_FOR_LIVING: "Reasons for Living",
}
