"""
Snapshot diffing.

Compares freshly extracted sections with the stored ones. An activity is
matched by ``(name, url)`` inside the section of the same name only, so
renaming a section makes all of its activities look new.
"""

import logging
from typing import Dict, List, Mapping, Set

from vu_monitor.models import (
    ActivityRef,
    AssignmentDetails,
    ChangeSet,
    NewItem,
    UpdatedItem,
)

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Classifies each activity of a snapshot as new, updated or unchanged."""

    def detect(
        self,
        old_sections: Mapping[str, List[ActivityRef]],
        new_sections: Mapping[str, List[ActivityRef]],
        assignments: Mapping[str, AssignmentDetails],
    ) -> ChangeSet:
        """
        Diff two snapshots of the same course.

        Args:
            old_sections: Stored sections from the previous cycle
            new_sections: Sections extracted in this cycle
            assignments: Stored assignment/quiz details keyed by activity url

        Returns:
            ChangeSet: new items, and deadline-bearing items to re-check
        """
        changes = ChangeSet()

        for section_name, activities in new_sections.items():
            old_identities = {a.identity for a in old_sections.get(section_name, [])}

            for activity in activities:
                if activity.identity not in old_identities:
                    changes.new_items.append(NewItem(section=section_name, activity=activity))
                    continue

                if not activity.is_deadline_bearing:
                    continue

                old_details = assignments.get(activity.url)
                if old_details is not None:
                    changes.updated_items.append(
                        UpdatedItem(
                            section=section_name,
                            activity=activity,
                            old_details=old_details,
                        )
                    )

        logger.debug(
            f"Detected {len(changes.new_items)} new and "
            f"{len(changes.updated_items)} candidate updated item(s)"
        )
        return changes


def count_activities(sections: Dict[str, List[ActivityRef]]) -> int:
    return sum(len(activities) for activities in sections.values())


def without_activities(sections: Mapping[str, List[ActivityRef]], urls: Set[str]) -> Dict[str, List[ActivityRef]]:
    """Copy of ``sections`` with the given activity urls left out."""
    if not urls:
        return dict(sections)
    return {
        name: [a for a in activities if a.url not in urls]
        for name, activities in sections.items()
    }
