"""Expiry and cache lifetime rules on ShortLink."""

import datetime

from shortener.models import ShortLink, utcnow

NOW = datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.UTC)


def make_link(expires_at: datetime.datetime | None = None) -> ShortLink:
    return ShortLink(short_code="abc", original_url="https://example.com", clicks=0, expires_at=expires_at)


def test_link_without_expiry_never_expires() -> None:
    link = make_link()
    assert not link.is_expired(NOW)
    assert link.ttl_seconds(3600, NOW) == 3600


def test_link_past_expiry_is_expired() -> None:
    link = make_link(NOW - datetime.timedelta(seconds=1))
    assert link.is_expired(NOW)


def test_link_before_expiry_is_live() -> None:
    link = make_link(NOW + datetime.timedelta(seconds=30))
    assert not link.is_expired(NOW)


def test_ttl_capped_by_remaining_lifetime() -> None:
    link = make_link(NOW + datetime.timedelta(seconds=120))
    assert link.ttl_seconds(3600, NOW) == 120


def test_ttl_uses_default_when_expiry_is_further_away() -> None:
    link = make_link(NOW + datetime.timedelta(days=2))
    assert link.ttl_seconds(3600, NOW) == 3600


def test_ttl_non_positive_once_expired() -> None:
    link = make_link(NOW - datetime.timedelta(seconds=5))
    assert link.ttl_seconds(3600, NOW) <= 0


def test_naive_expiry_is_treated_as_utc() -> None:
    link = make_link((NOW + datetime.timedelta(seconds=60)).replace(tzinfo=None))
    assert not link.is_expired(NOW)
    assert link.ttl_seconds(3600, NOW) == 60


def test_utcnow_is_timezone_aware() -> None:
    assert utcnow().tzinfo is not None
