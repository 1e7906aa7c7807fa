from rendezvous.negotiation import (
    NegotiationListener,
    build_configuration,
    candidates_from_sdp,
    remote_candidate_is_usable,
)

from fakes import FakeNegotiationSurface

GATHERED_SDP = "\r\n".join(
    [
        "v=0",
        "o=- 3905 3905 IN IP4 0.0.0.0",
        "s=-",
        "t=0 0",
        "m=audio 50000 UDP/TLS/RTP/SAVPF 96",
        "a=candidate:1 1 udp 2130706431 192.168.1.5 50000 typ host",
        "a=candidate:2 1 udp 1694498815 203.0.113.7 50000 typ srflx raddr 192.168.1.5 rport 50000",
        "a=end-of-candidates",
        "a=mid:0",
        "m=application 50001 DTLS/SCTP 5000",
        "a=mid:1",
        "a=candidate:3 1 udp 2130706431 192.168.1.5 50001 typ host",
        "",
    ]
)


def test_candidates_from_sdp_reports_mid_and_line_index():
    assert candidates_from_sdp(GATHERED_SDP) == [
        {"candidate": "candidate:1 1 udp 2130706431 192.168.1.5 50000 typ host", "sdpMid": "0", "sdpMLineIndex": 0},
        {
            "candidate": "candidate:2 1 udp 1694498815 203.0.113.7 50000 typ srflx raddr 192.168.1.5 rport 50000",
            "sdpMid": "0",
            "sdpMLineIndex": 0,
        },
        {"candidate": "candidate:3 1 udp 2130706431 192.168.1.5 50001 typ host", "sdpMid": "1", "sdpMLineIndex": 1},
    ]


def test_candidates_from_sdp_without_media():
    assert candidates_from_sdp("v=0\r\ns=-\r\n") == []


def test_remote_candidate_is_usable():
    assert remote_candidate_is_usable({"candidate": "candidate:1 1 udp 1 10.0.0.1 9 typ host"})
    assert not remote_candidate_is_usable({"candidate": ""})
    assert not remote_candidate_is_usable({"sdpMid": "0"})
    assert not remote_candidate_is_usable(None)
    assert not remote_candidate_is_usable("candidate:1")


def test_build_configuration_skips_entries_without_urls():
    config = build_configuration(
        [
            {"urls": "stun:stun.example:3478"},
            {"urls": ["turn:turn.example:3478"], "username": "u", "credential": "p"},
            {"username": "orphan"},
        ]
    )
    assert [server.urls for server in config.iceServers] == ["stun:stun.example:3478", ["turn:turn.example:3478"]]
    assert config.iceServers[1].username == "u"


class Recorder(NegotiationListener):
    def __init__(self):
        self.events = []

    def on_local_candidate(self, candidate):
        self.events.append(("candidate", candidate["candidate"]))

    def on_connection_state(self, state):
        self.events.append(("state", state))


class Broken(NegotiationListener):
    def on_local_candidate(self, candidate):
        raise RuntimeError("listener bug")


async def test_listeners_receive_events_and_a_broken_one_does_not_block_others():
    surface = FakeNegotiationSurface("a", local_candidates=1)
    recorder = Recorder()
    surface.add_listener(Broken())
    surface.add_listener(recorder)

    await surface.create_offer()
    surface.fail()
    assert recorder.events == [("candidate", surface.local_candidates[0]["candidate"]), ("state", "failed")]

    surface.remove_listener(recorder)
    surface.fail()
    assert len(recorder.events) == 2
