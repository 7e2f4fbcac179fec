import asyncio

from nebubot.verification import VerifyResult, passphrase_matches, verify_member
from tests.fakes import FakeGuild, FakeMember, FakeRole


def test_passphrase_is_trimmed_and_case_insensitive():
    assert passphrase_matches("  W for Whale ", "w for whale")
    assert not passphrase_matches("w for walrus", "w for whale")
    assert not passphrase_matches(None, "w for whale")


def test_verify_member_outcomes():
    role = FakeRole(9, "Verified")
    guild = FakeGuild(id=1, roles=[role])
    member = FakeMember(id=10, roles=[], guild=guild)

    assert asyncio.run(verify_member(member, role)) is VerifyResult.VERIFIED
    assert member.added_roles == [9]
    assert asyncio.run(verify_member(member, role)) is VerifyResult.ALREADY_VERIFIED
    assert asyncio.run(verify_member(member, None)) is VerifyResult.FAILED


def test_verify_member_reports_failure_when_role_cannot_be_added():
    role = FakeRole(9, "Verified")
    member = FakeMember(
        id=10, roles=[], guild=FakeGuild(id=1, roles=[role]), fail_add=True
    )
    assert asyncio.run(verify_member(member, role)) is VerifyResult.FAILED
    assert member.roles == []
