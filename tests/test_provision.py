"""Provisioning CLI argument handling."""

import uuid

import pytest

from shortener.provision import build_parser


def test_create_parses_name_and_rate_limit() -> None:
    args = build_parser().parse_args(["create", "--name", "partner", "--rate-limit", "120"])
    assert args.command == "create"
    assert args.name == "partner"
    assert args.rate_limit == 120


def test_create_rate_limit_is_optional() -> None:
    args = build_parser().parse_args(["create", "--name", "partner"])
    assert args.rate_limit is None


@pytest.mark.parametrize("value", ["0", "-5", "many"])
def test_create_rejects_bad_rate_limit(value: str) -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["create", "--name", "partner", "--rate-limit", value])


def test_revoke_parses_key_id() -> None:
    key_id = uuid.uuid4()
    args = build_parser().parse_args(["revoke", str(key_id)])
    assert args.key_id == key_id


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
