import dataclasses

import pytest

from speedprobe.directory.catalog import EndpointCatalog
from speedprobe.errors import ConfigurationError, EmptyCandidateSet, SelectionError
from speedprobe.jobs import run_selection, select_server
from speedprobe.network.latency import LatencyProbe

TOKYO = "http://tokyo.example:8080/speedtest/latency.txt"
OSAKA = "http://osaka.example:8080/speedtest/latency.txt"
SEOUL = "http://seoul.example/speedtest/latency.txt"


@pytest.fixture
def wire(make_transport):
    """Build transport, catalog and latency probe over the sample directory."""

    def _wire(routes, config):
        transport = make_transport(routes, directory=True)
        catalog = EndpointCatalog(transport, config)
        probe = LatencyProbe(transport, max_workers=config.max_workers, clock=transport.clock)
        return transport, catalog, probe

    return _wire


def test_explicit_server_is_returned_even_when_slowest(client_config, wire):
    config = dataclasses.replace(client_config, server_id=12345)
    transport, catalog, probe = wire({TOKYO: 0.3, OSAKA: 0.01, SEOUL: 0.02}, config)

    selected = select_server(config, catalog, probe)

    assert selected.id == 12345
    assert selected.latency == pytest.approx(0.3)
    # only the requested server is probed, and no closest lookup happens
    assert config.config_url not in transport.calls
    assert OSAKA not in transport.calls and SEOUL not in transport.calls
    assert transport.calls.count(TOKYO) == config.latency_attempts


def test_explicit_server_is_returned_when_unreachable(client_config, wire):
    config = dataclasses.replace(client_config, server_id=222)
    _, catalog, probe = wire({OSAKA: ConnectionError("down")}, config)

    selected = select_server(config, catalog, probe)

    assert selected.id == 222
    assert selected.latency == config.error_latency


def test_missing_explicit_server_is_a_configuration_error(client_config, wire):
    config = dataclasses.replace(client_config, server_id=99999)
    _, catalog, probe = wire({}, config)

    with pytest.raises(ConfigurationError) as excinfo:
        select_server(config, catalog, probe)
    assert excinfo.value.stage == "lookup"
    assert "99999" in str(excinfo.value)


def test_explicit_server_that_is_also_excluded_names_the_exclusion(client_config, wire):
    config = dataclasses.replace(client_config, server_id=222, excluded_ids=frozenset({222}))
    transport, catalog, probe = wire({OSAKA: 0.01}, config)

    with pytest.raises(ConfigurationError) as excinfo:
        select_server(config, catalog, probe)
    assert excinfo.value.stage == "lookup"
    assert "SPEEDPROBE_EXCLUDE" in str(excinfo.value)
    assert "not found" not in str(excinfo.value)
    assert OSAKA not in transport.calls


def test_automatic_mode_picks_lowest_latency(client_config, wire):
    transport, catalog, probe = wire(
        {TOKYO: 0.05, OSAKA: 0.01, SEOUL: TimeoutError("timed out")}, client_config
    )

    selected = select_server(client_config, catalog, probe)

    assert selected.id == 222
    assert selected.latency == pytest.approx(0.01)
    assert transport.calls[:2] == [client_config.config_url, client_config.servers_url]


def test_automatic_mode_with_no_candidates_fails(client_config, wire):
    transport, catalog, probe = wire(
        {client_config.servers_url: b"<settings><servers/></settings>"}, client_config
    )

    with pytest.raises(EmptyCandidateSet) as excinfo:
        select_server(client_config, catalog, probe)
    assert excinfo.value.stage == "candidates"


def test_directory_fetch_failure_is_fatal(client_config, wire):
    transport, catalog, probe = wire({client_config.servers_url: ConnectionError("refused")}, client_config)

    with pytest.raises(SelectionError) as excinfo:
        select_server(client_config, catalog, probe)
    assert excinfo.value.stage == "directory"
    assert transport.calls.count(client_config.servers_url) == 1


def test_directory_decode_failure_is_fatal(client_config, wire):
    config = dataclasses.replace(client_config, server_id=12345)
    _, catalog, probe = wire({config.servers_url: b"<broken"}, config)

    with pytest.raises(SelectionError) as excinfo:
        select_server(config, catalog, probe)
    assert excinfo.value.stage == "decode"
    assert "server-list" in str(excinfo.value)


def test_run_selection_closes_transport(app_config, make_transport):
    transport = make_transport({TOKYO: 0.01, OSAKA: 0.02, SEOUL: 0.03}, directory=True)

    selected = run_selection(app_config, transport=transport)

    assert selected.id in {12345, 222, 333}
    assert transport.closed
