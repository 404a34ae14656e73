import logging

import pytest

from src.app.services.threat_intelligence import StaticThreatIntelligence


@pytest.fixture
def intel():
    return StaticThreatIntelligence(
        denylist=["45.83.64.0/22"],
        tor_exit_nodes=["185.220.101.4"],
        vpn_ranges=["91.207.56.0/24"],
    )


@pytest.mark.asyncio
async def test_no_address_has_no_intelligence(intel):
    assert await intel.lookup(None) is None
    assert await intel.lookup("") is None


@pytest.mark.asyncio
async def test_public_address_defaults_clean(intel):
    result = await intel.lookup("8.8.8.8")

    assert result.ip_reputation == "clean"
    assert result.known_attacker is False
    assert result.bot_detection == "human"


@pytest.mark.asyncio
async def test_private_addresses_are_always_clean():
    intel = StaticThreatIntelligence(denylist=["10.0.0.0/8"])

    for address in ("10.1.2.3", "127.0.0.1", "169.254.1.1", "::1"):
        result = await intel.lookup(address)
        assert result.ip_reputation == "clean"


@pytest.mark.asyncio
async def test_denylisted_network_is_malicious(intel):
    result = await intel.lookup("45.83.65.10")

    assert result.ip_reputation == "malicious"
    assert result.known_attacker is True


@pytest.mark.asyncio
async def test_tor_exit_node_is_suspicious(intel):
    result = await intel.lookup("185.220.101.4")

    assert result.tor_detection is True
    assert result.ip_reputation == "suspicious"


@pytest.mark.asyncio
async def test_vpn_range_only_sets_flag(intel):
    result = await intel.lookup("91.207.56.20")

    assert result.vpn_detection is True
    assert result.ip_reputation == "clean"


@pytest.mark.asyncio
async def test_blocked_ip_becomes_malicious(intel):
    intel.block_ip("8.8.4.4")

    blocked = await intel.lookup("8.8.4.4")
    other = await intel.lookup("8.8.8.8")

    assert blocked.ip_reputation == "malicious"
    assert other.ip_reputation == "clean"


@pytest.mark.asyncio
async def test_malformed_address_is_suspicious_bot(intel):
    result = await intel.lookup("not-an-ip")

    assert result.bot_detection == "suspicious"


def test_invalid_entries_are_skipped(caplog):
    with caplog.at_level(logging.WARNING):
        intel = StaticThreatIntelligence(denylist=["bogus", "45.83.64.0/22"])

    assert len(intel.denylist) == 1
    assert "Ignoring invalid threat intelligence entry: bogus" in caplog.text
