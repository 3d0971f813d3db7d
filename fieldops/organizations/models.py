from __future__ import annotations

from django.db import models
from django.db.models import CharField
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _
from model_utils.models import TimeStampedModel


class Organization(TimeStampedModel):
    """
    A tenant of the platform (a contractor company, a general contractor,
    a developer...). Projects, tasks and members all hang off an organization.

    Billing only needs the primary key: each organization owns exactly one
    ``billing.Subscription`` and one ``billing.Wallet``, both created lazily.
    """

    name = CharField(
        max_length=255,
        blank=False,
        help_text=_("Name of the organization, e.g. 'Stroy Montazh LLC'"),
    )

    slug = models.SlugField(
        unique=True,
        blank=True,
        null=False,
    )  # e.g. "stroy-montazh"

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        """Override save to ensure slug is set if not provided."""
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)
