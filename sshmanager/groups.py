"""Group management utilities for sshmanager.

This module provides the :class:`GroupManager`, which handles creation,
deletion and ordering of the groups hosts are organised into.
"""

import logging
from typing import Any, Dict, List, Optional

from .models import Group, GroupColor

logger = logging.getLogger(__name__)


class GroupManager:
    """Manages the groups of a registry, keyed by group id"""

    def __init__(self):
        self.groups: Dict[str, Group] = {}  # insertion order breaks sort_order ties

    def load(self, groups_data: List[Dict[str, Any]]):
        """Replace all groups with serialized *groups_data*"""
        self.groups = {}
        for entry in groups_data or []:
            try:
                group = Group.from_dict(entry)
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Failed to load group {entry!r}: {e}")
                continue
            self.groups[group.id] = group

    def to_list(self) -> List[Dict[str, Any]]:
        return [group.to_dict() for group in self.get_all_groups()]

    def group_name_exists(self, name: str, exclude_id: Optional[str] = None) -> bool:
        """Check if a group name already exists"""
        for group in self.groups.values():
            if group.id != exclude_id and group.name.lower() == name.lower():
                return True
        return False

    def create_group(self, name: str, icon: str = "folder", color=GroupColor.BLUE,
                     sort_order: Optional[int] = None) -> Group:
        """Create a new group and return it"""
        name = (name or "").strip()
        if not name:
            raise ValueError("Group name cannot be empty")
        # Check for duplicate names (case-insensitive)
        if self.group_name_exists(name):
            raise ValueError(f"Group name '{name}' already exists")

        if sort_order is None:
            sort_order = max((g.sort_order for g in self.groups.values()), default=-1) + 1
        group = Group(name=name, icon=icon, color=GroupColor.coerce(color), sort_order=sort_order)
        self.groups[group.id] = group
        return group

    def add_group(self, group: Group) -> Group:
        if group.id in self.groups:
            raise ValueError(f"Group id '{group.id}' already exists")
        self.groups[group.id] = group
        return group

    def get_group(self, group_id: str) -> Group:
        try:
            return self.groups[group_id]
        except KeyError:
            raise KeyError(f"Unknown group id: {group_id}") from None

    def find_group_by_name(self, name: str) -> Optional[Group]:
        for group in self.groups.values():
            if group.name.lower() == (name or "").lower():
                return group
        return None

    def update_group(self, group_id: str, **changes) -> Group:
        """Apply attribute *changes* to a group"""
        group = self.get_group(group_id)
        allowed = {"name", "icon", "color", "is_expanded", "sort_order"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown group fields: {', '.join(sorted(unknown))}")
        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValueError("Group name cannot be empty")
            if self.group_name_exists(name, exclude_id=group_id):
                raise ValueError(f"Group name '{name}' already exists")
            changes["name"] = name
        if "color" in changes:
            changes["color"] = GroupColor.coerce(changes["color"])
        for key, value in changes.items():
            setattr(group, key, value)
        return group

    def delete_group(self, group_id: str) -> Group:
        """Delete a group; the caller moves its hosts to the root"""
        group = self.get_group(group_id)
        del self.groups[group_id]
        return group

    def get_all_groups(self) -> List[Group]:
        """Get all groups in display order"""
        # sorted() is stable, so equal sort_order keeps insertion order
        return sorted(self.groups.values(), key=lambda g: g.sort_order)

    def set_group_expanded(self, group_id: str, expanded: bool):
        """Set whether a group is expanded"""
        self.get_group(group_id).is_expanded = bool(expanded)

    def reorder_group(self, source_group_id: str, target_group_id: str, position: str):
        """Move a group above or below another one and renumber the orders"""
        if source_group_id == target_group_id:
            return
        self.get_group(source_group_id)
        self.get_group(target_group_id)

        groups_list = [g.id for g in self.get_all_groups()]
        groups_list.remove(source_group_id)
        target_index = groups_list.index(target_group_id)

        if position == "above":
            groups_list.insert(target_index, source_group_id)
        elif position == "below":
            groups_list.insert(target_index + 1, source_group_id)
        else:
            raise ValueError(f"Unknown position: {position}")

        self._update_group_orders(groups_list)

    def _update_group_orders(self, groups_list):
        """Update the order field for groups in the given order"""
        for i, group_id in enumerate(groups_list):
            if group_id in self.groups:
                self.groups[group_id].sort_order = i
