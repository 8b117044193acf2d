import typing as t
import uuid

from django.db import models


class TimeStampedModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        abstract = True

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Override the save method to call full_clean before saving."""
        self.full_clean()
        super().save(*args, **kwargs)


class CounterFieldsMixin(models.Model):
    """Mixin that keeps ``save()`` from overwriting counters maintained with ``F()`` updates.

    Subclasses must define COUNTER_FIELDS as an iterable of field names. On updates
    those fields are left out of the UPDATE statement, so a stale in-memory value can
    never clobber a concurrent atomic increment.
    """

    COUNTER_FIELDS: t.Iterable[str]

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Exclude counter fields from updates of existing rows."""
        if not self._state.adding and kwargs.get("update_fields") is None:
            kwargs["update_fields"] = [
                f.name
                for f in self._meta.concrete_fields
                if not f.primary_key and f.name not in set(self.COUNTER_FIELDS)
            ]
        super().save(*args, **kwargs)

    class Meta:
        abstract = True
