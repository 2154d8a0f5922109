"""
Unit tests for the redirect router.
"""

import pytest

from redirector.rules import compile_rules
from redirector.http.router import (
    DecisionKind,
    RedirectRouter,
    RouteDecision,
    build_subject,
    header_text,
    resolve_client_identity,
    route,
)
from redirector.http.request import HTTPRequest
from redirector.http.status_codes import HTTPStatus


def make_request(target: str, host: str = None, forwarded_for: str = None,
                 client_address: tuple = ("10.0.0.5", 40000)) -> HTTPRequest:
    """Helper to create a request for testing."""
    headers = {}
    if host is not None:
        headers["host"] = host
    if forwarded_for is not None:
        headers["x-forwarded-for"] = forwarded_for
    return HTTPRequest(method="GET", target=target, headers=headers,
                       client_address=client_address)


@pytest.fixture
def rules(redirects):
    return compile_rules(redirects)


class TestRoute:
    """Tests for route()."""

    def test_exact_redirect(self, rules):
        """Test an anchored rule with a literal target."""
        decision = route(rules, "example.com", "/old", peer_address="10.0.0.5")

        assert decision.kind is DecisionKind.REDIRECT
        assert decision.location == "example.com/new"
        assert decision.subject == "example.com/old"
        assert decision.client_identity == "10.0.0.5"

    def test_capture_groups(self, rules):
        """Test substituting capture groups into the target."""
        decision = route(rules, "site.io", "/docs/intro", forwarded_for="203.0.113.7")

        assert decision.is_redirect
        assert decision.location == "site.io/help/intro"
        assert decision.client_identity == "203.0.113.7"

    def test_no_match(self, rules):
        """Test that an unmatched request is NOT_FOUND."""
        decision = route(rules, "other.com", "/x")

        assert decision.kind is DecisionKind.NOT_FOUND
        assert decision.location is None

    def test_empty_rule_set(self):
        """Test that no rules means every request is NOT_FOUND."""
        decision = route(compile_rules({}), "example.com", "/old")

        assert decision.kind is DecisionKind.NOT_FOUND

    def test_first_match_wins(self):
        """Test that the earliest matching rule is used."""
        rules = compile_rules({
            "REDIRECT_B_FROM": "page", "REDIRECT_B_TO": "second",
            "REDIRECT_A_FROM": "page", "REDIRECT_A_TO": "first",
        })

        assert route(rules, "h", "/page").location == "h/first"

    def test_later_rule_used_when_earlier_misses(self):
        """Test falling through to a later rule."""
        rules = compile_rules({
            "REDIRECT_A_FROM": "^nomatch$", "REDIRECT_A_TO": "x",
            "REDIRECT_B_FROM": "page", "REDIRECT_B_TO": "second",
        })

        assert route(rules, "h", "/page").location == "h/second"

    def test_replaces_every_match(self):
        """Test that an unanchored pattern substitutes all occurrences."""
        rules = compile_rules({"REDIRECT_A_FROM": "a", "REDIRECT_A_TO": "b"})

        assert route(rules, "", "xaxa").location == "xbxb"

    def test_unanchored_keeps_surrounding_text(self):
        """Test that text outside the match survives."""
        rules = compile_rules({"REDIRECT_A_FROM": "/old/", "REDIRECT_A_TO": "/new/"})

        decision = route(rules, "example.com", "/old/page?x=1")

        assert decision.location == "example.com/new/page?x=1"

    def test_missing_host(self, rules):
        """Test that the subject is just the uri without a Host header."""
        decision = route(rules, None, "/old")

        assert decision.subject == "/old"
        assert decision.kind is DecisionKind.NOT_FOUND

    def test_query_string_is_part_of_subject(self):
        """Test that patterns can see the query string."""
        rules = compile_rules({
            "REDIRECT_Q_FROM": r"^(.*)\?id=(\d+)$",
            "REDIRECT_Q_TO": "$1/items/$2",
        })

        assert route(rules, "a.io", "/show?id=42").location == "a.io/show/items/42"

    def test_idempotent(self, rules):
        """Test that the same input always gives the same decision."""
        first = route(rules, "site.io", "/docs/intro", "1.2.3.4", "10.0.0.5")
        second = route(rules, "site.io", "/docs/intro", "1.2.3.4", "10.0.0.5")

        assert first == second

    def test_non_ascii_host_treated_as_absent(self, rules):
        """Test that an unreadable Host header is ignored."""
        decision = route(rules, "exämple.com", "/old")

        assert decision.subject == "/old"
        assert decision.kind is DecisionKind.NOT_FOUND


class TestClientIdentity:
    """Tests for resolve_client_identity()."""

    def test_forwarded_for_beats_peer(self):
        assert resolve_client_identity("203.0.113.7", "10.0.0.5") == "203.0.113.7"

    def test_peer_when_no_forwarded_for(self):
        assert resolve_client_identity(None, "10.0.0.5") == "10.0.0.5"

    def test_unknown_when_nothing(self):
        assert resolve_client_identity(None, None) == "unknown"

    def test_empty_values_count_as_absent(self):
        """Test that empty strings fall through to the next source."""
        assert resolve_client_identity("", "10.0.0.5") == "10.0.0.5"
        assert resolve_client_identity("", "") == "unknown"

    def test_forwarded_for_kept_verbatim(self):
        """Test that a proxy chain is not split."""
        assert resolve_client_identity("1.1.1.1, 2.2.2.2", "10.0.0.5") == "1.1.1.1, 2.2.2.2"

    def test_non_ascii_forwarded_for_treated_as_absent(self):
        """Test falling back to the peer for an unreadable header."""
        assert resolve_client_identity("1.1.1.1\xff", "10.0.0.5") == "10.0.0.5"


class TestHelpers:
    """Tests for header_text() and build_subject()."""

    @pytest.mark.parametrize("value", ["site.io", "a b", "tab\there", ""])
    def test_header_text_accepts_visible_ascii(self, value: str):
        assert header_text(value) == value

    @pytest.mark.parametrize("value", ["caf\xe9", "a\x00b", "line\x7f", "日本"])
    def test_header_text_rejects_other_characters(self, value: str):
        assert header_text(value) is None

    def test_header_text_none(self):
        assert header_text(None) is None

    def test_build_subject_concatenates(self):
        """Test that nothing is inserted between host and uri."""
        assert build_subject("example.com", "/old") == "example.com/old"
        assert build_subject("example.com", "old") == "example.comold"

    def test_build_subject_without_host(self):
        assert build_subject(None, "/old") == "/old"


class TestRedirectRouter:
    """Tests for RedirectRouter."""

    def test_handle_redirect(self, rules):
        """Test that a match becomes 302 with Location and no body."""
        router = RedirectRouter(rules)

        response = router.handle(make_request("/old", host="example.com"))

        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "example.com/new"
        assert response.body == b""

    def test_handle_not_found(self, rules):
        """Test that no match becomes 404 "Not Found"."""
        router = RedirectRouter(rules)

        response = router.handle(make_request("/x", host="other.com"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Not Found"
        assert "Location" not in response.headers

    def test_route_uses_request_fields(self, rules):
        """Test identity and subject taken from the request."""
        router = RedirectRouter(rules)

        decision = router.route(make_request("/docs/a", host="site.io", forwarded_for="1.2.3.4"))

        assert decision == RouteDecision(
            kind=DecisionKind.REDIRECT,
            client_identity="1.2.3.4",
            subject="site.io/docs/a",
            location="site.io/help/a",
        )

    def test_route_peer_address(self, rules):
        """Test falling back to the connection's peer IP."""
        router = RedirectRouter(rules)

        decision = router.route(make_request("/x"))

        assert decision.client_identity == "10.0.0.5"

    def test_route_unknown_client(self, rules):
        """Test a request without any client information."""
        router = RedirectRouter(rules)

        decision = router.route(make_request("/x", client_address=("", 0)))

        assert decision.client_identity == "unknown"

    def test_len(self, rules):
        assert len(RedirectRouter(rules)) == 2
