"""
Shift Factory

Builds Shift instances from the templates held in the template cache.
"""

import logging
import warnings
from datetime import date
from typing import Iterable, List, Optional, Sequence

from .exceptions import InvalidTemplateError
from .models import HalfTeamLike, ShiftTemplate
from .schedule import Shift, ShiftBuilder
from .template_cache import ShiftTemplateCache

logger = logging.getLogger(__name__)


class TemplateShiftBuilder(ShiftBuilder):
    """Shift builder that can resolve templates by index or name"""

    def __init__(self, cache: ShiftTemplateCache):
        super().__init__()
        self._cache = cache
        self._index: Optional[int] = None
        self._name: Optional[str] = None

    def with_index(self, index: int) -> "TemplateShiftBuilder":
        self._index = index
        return self

    def with_name(self, name: str) -> "TemplateShiftBuilder":
        self._name = name
        return self

    def build(self) -> Optional[Shift]:
        """Build the shift, or return None when it cannot be resolved"""
        if self._template is None:
            if self._index is not None:
                self._template = self._cache.get_template(self._index)
            elif self._name is not None:
                self._template = self._cache.get_template_by_name(self._name)
        if self._template is None:
            logger.warning(f"Cannot build shift: no template for index={self._index} name={self._name}")
            return None
        if self._date is None:
            logger.warning(f"Cannot build shift '{self._template.name}': no date given")
            return None
        return super().build()


class ShiftFactory:
    def __init__(self, cache: ShiftTemplateCache):
        self.cache = cache

    def create_shift(self, index: int, shift_date: date) -> Optional[Shift]:
        template = self.cache.get_template(index)
        if template is None:
            logger.warning(f"No shift template at index {index}")
            return None
        return Shift(template, shift_date)

    def create_named_shift(self, name: str, shift_date: date) -> Optional[Shift]:
        template = self.cache.get_template_by_name(name)
        if template is None:
            logger.warning(f"No shift template named '{name}'")
            return None
        return Shift(template, shift_date)

    def create_shift_for_template(self, template: ShiftTemplate, shift_date: date) -> Shift:
        return Shift(template, shift_date)

    def create_daily_shifts(self, shift_date: date,
                            templates: Optional[Sequence[ShiftTemplate]] = None) -> List[Shift]:
        """
        One shift per template, in template order.

        Pass `templates` to build several days from the same snapshot.
        """
        if templates is None:
            templates = self.cache.get_all_templates()
        return [Shift(template, shift_date) for template in templates]

    def create_named_shifts(self, shift_date: date, *names: str) -> List[Shift]:
        shifts = []
        for name in names:
            shift = self.create_named_shift(name, shift_date)
            if shift is not None:
                shifts.append(shift)
        return shifts

    def create_custom_shift(self, template: ShiftTemplate, shift_date: date, is_stop: bool = False,
                            half_teams: Iterable[HalfTeamLike] = ()) -> Shift:
        if template is None:
            raise InvalidTemplateError("A custom shift requires a template")
        return Shift(template, shift_date, is_stop, half_teams)

    def create_standard_shift(self, ordinal: int, shift_date: date) -> Optional[Shift]:
        """
        Create a shift from a 1-based ordinal.

        Deprecated: use create_shift() with a zero-based index.
        """
        warnings.warn(
            "create_standard_shift() is deprecated, use create_shift() with a zero-based index",
            DeprecationWarning,
            stacklevel=2
        )
        count = self.cache.template_count
        if ordinal < 1 or ordinal > count:
            raise ValueError(f"Shift ordinal {ordinal} out of range 1..{count}")
        return self.create_shift(ordinal - 1, shift_date)

    def builder(self) -> TemplateShiftBuilder:
        return TemplateShiftBuilder(self.cache)

    def is_ready(self) -> bool:
        return self.cache.is_initialized and self.cache.template_count > 0

    def available_shifts_info(self) -> str:
        lines = [f"Available shift templates ({self.cache.template_count}):"]
        for index, template in enumerate(self.cache.get_all_templates()):
            lines.append(f"  {index}: {template.name} "
                         f"({template.formatted_start_time}-{template.formatted_end_time})")
        return "\n".join(lines)
