import logging
import threading
from unittest.mock import MagicMock

from conftest import ScriptedTransport, ok

from method_tester.config import Settings
from method_tester.errors import ErrorKind, TransportError
from method_tester.execution.controller import ExecutionSession, SessionState, build_result
from method_tester.execution.transport import HttpResponse, RequestsTransport
from method_tester.models import NextPageConfig, PaginationPolicy, RequestSpec


def _spec(**overrides):
    data = dict(verb="GET", url="https://api.x.com/v1/users")
    data.update(overrides)
    return RequestSpec(**data)


def _linked_page(n):
    link = f'<https://api.x.com/v1/users?page_info=p{n + 1}>; rel="next"'
    return ok(body=[{"page": n}], headers={"Link": link})


class TestSingleShot:
    def test_success(self):
        transport = ScriptedTransport(ok(body={"id": 1, "executionId": "exec-1"}, headers={"X-Rate": "1"}))
        session = ExecutionSession(transport=transport)

        result = session.execute(_spec())

        assert result.success is True
        assert result.status == 200
        assert result.response_body == {"id": 1, "executionId": "exec-1"}
        assert result.response_headers == {"X-Rate": "1"}
        assert result.execution_id == "exec-1"
        assert result.error is None
        assert session.last_result is result
        assert session.state is SessionState.IDLE
        assert len(transport.sent) == 1

    def test_server_error_field_used(self):
        transport = ScriptedTransport(ok(body={"error": "Invalid token"}, status=401))
        result = ExecutionSession(transport=transport).execute(_spec())
        assert result.success is False
        assert result.error == "Invalid token"
        assert result.error_kind is ErrorKind.HTTP

    def test_error_synthesized_from_status(self):
        transport = ScriptedTransport(ok(body="<html>oops</html>", status=502))
        result = ExecutionSession(transport=transport).execute(_spec())
        assert result.error == "Request failed with status 502"

    def test_transport_failure_is_a_result(self):
        transport = ScriptedTransport(TransportError("Name or service not known"))
        result = ExecutionSession(transport=transport).execute(_spec())
        assert result.success is False
        assert result.status == 0
        assert result.error_kind is ErrorKind.TRANSPORT
        assert "Name or service" in result.error

    def test_unencodable_header_is_a_transport_result(self):
        http = MagicMock()
        http.request.side_effect = UnicodeEncodeError("latin-1", "\u20ac", 0, 1, "ordinal not in range(256)")
        session = ExecutionSession(transport=RequestsTransport(session=http))

        result = session.execute(_spec(headers={"X-Name": "Zo\u00eb \u20ac"}))

        assert result.success is False
        assert result.error_kind is ErrorKind.TRANSPORT
        assert session.state is SessionState.IDLE

    def test_unknown_response_charset(self):
        response = MagicMock()
        response.status_code = 200
        response.headers = {"Content-Type": "application/json; charset=bogus"}
        response.encoding = "bogus"
        response.iter_content.return_value = iter([b'{"id": 7}'])
        http = MagicMock()
        http.request.return_value = response

        result = ExecutionSession(transport=RequestsTransport(session=http)).execute(_spec())

        assert result.success is True
        assert result.response_body == {"id": 7}

    def test_empty_url_makes_no_call(self):
        transport = ScriptedTransport(ok())
        result = ExecutionSession(transport=transport).execute(_spec(url=""))
        assert result.error_kind is ErrorKind.COMPOSITION
        assert transport.sent == []


class TestBuildResult:
    def test_nested_execution_id(self):
        result = build_result(HttpResponse(status=200, body={"data": {"executionId": "e-9"}}))
        assert result.execution_id == "e-9"

    def test_error_object(self):
        result = build_result(HttpResponse(status=400, body={"error": {"message": "bad field"}}))
        assert result.error == "bad field"

    def test_redirect_status_is_not_success(self):
        assert build_result(HttpResponse(status=304)).success is False


class TestPaginated:
    def test_max_iterations_bounds_requests(self):
        transport = ScriptedTransport(*[_linked_page(n) for n in range(10)])
        session = ExecutionSession(transport=transport)

        pages = session.execute(_spec(pagination=PaginationPolicy(max_iterations=3)), paginated=True)

        assert len(pages) == 3
        assert len(transport.sent) == 3
        assert [p.response_body[0]["page"] for p in pages] == [0, 1, 2]

    def test_follows_link_cursor(self):
        transport = ScriptedTransport(_linked_page(0), _linked_page(1), ok(body=[{"page": 2}]))
        pages = ExecutionSession(transport=transport).execute(_spec(pagination=PaginationPolicy()), paginated=True)

        assert len(pages) == 3
        assert transport.sent[0].query_params == {"limit": "50"}
        assert transport.sent[1].query_params == {"limit": "50", "page_info": "p1"}
        assert transport.sent[2].query_params == {"limit": "50", "page_info": "p2"}

    def test_default_bound_from_settings(self):
        transport = ScriptedTransport(_linked_page(0))
        session = ExecutionSession(transport=transport, settings=Settings(default_max_iterations=4))
        pages = session.execute(_spec(), paginated=True)
        assert len(pages) == 4

    def test_stops_on_failed_page(self):
        transport = ScriptedTransport(_linked_page(0), ok(body={"error": "rate limited"}, status=429), _linked_page(2))
        pages = ExecutionSession(transport=transport).execute(_spec(pagination=PaginationPolicy()), paginated=True)
        assert len(pages) == 2
        assert pages[-1].error == "rate limited"

    def test_body_cursor(self):
        policy = PaginationPolicy(
            next_page=NextPageConfig(location="body", field="next", is_absolute_url=False, token_param="cursor"),
        )
        transport = ScriptedTransport(ok(body={"items": [1], "next": "c2"}), ok(body={"items": [2], "next": None}))
        pages = ExecutionSession(transport=transport).execute(_spec(pagination=policy), paginated=True)
        assert len(pages) == 2
        assert transport.sent[1].query_params["cursor"] == "c2"

    def test_disabled_policy_fetches_one_page(self):
        transport = ScriptedTransport(_linked_page(0))
        policy = PaginationPolicy(enabled=False)
        pages = ExecutionSession(transport=transport).execute(_spec(pagination=policy), paginated=True)
        assert len(pages) == 1


class TestBusyGuard:
    def test_second_run_rejected_while_running(self):
        inner = {}

        def reenter(spec):
            inner["result"] = session.execute(_spec())
            inner["busy"] = session.busy

        transport = ScriptedTransport(ok(body={"n": 1}), on_send=reenter)
        session = ExecutionSession(transport=transport)

        result = session.execute(_spec())

        assert inner == {"result": None, "busy": True}
        assert result.success is True
        assert len(transport.sent) == 1
        assert session.busy is False

    def test_run_allowed_again_after_completion(self):
        transport = ScriptedTransport(ok(body=1), ok(body=2))
        session = ExecutionSession(transport=transport)
        assert session.execute(_spec()).response_body == 1
        assert session.execute(_spec()).response_body == 2


class TestCancellation:
    def test_late_result_not_applied(self):
        previous = ok(body={"old": True})
        transport = ScriptedTransport(previous, ok(body={"late": True}))
        session = ExecutionSession(transport=transport)
        first = session.execute(_spec())

        transport.on_send = lambda spec: session.cancel()
        outcome = session.execute(_spec())

        assert outcome is None
        assert session.last_result is first
        assert session.state is SessionState.IDLE

    def test_cancel_from_other_thread(self):
        started = threading.Event()
        release = threading.Event()

        def block(spec):
            started.set()
            release.wait(timeout=5)

        transport = ScriptedTransport(ok(body={"late": True}), on_send=block)
        session = ExecutionSession(transport=transport)
        outcomes = []
        worker = threading.Thread(target=lambda: outcomes.append(session.execute(_spec())))
        worker.start()
        started.wait(timeout=5)

        assert session.cancel() is True
        assert session.state is SessionState.CANCELLED
        release.set()
        worker.join(timeout=5)

        assert outcomes == [None]
        assert session.last_result is None

    def test_cancel_stops_pagination(self):
        transport = ScriptedTransport(*[_linked_page(n) for n in range(5)])
        session = ExecutionSession(transport=transport)
        transport.on_send = lambda spec: len(transport.sent) == 2 and session.cancel()

        outcome = session.execute(_spec(pagination=PaginationPolicy()), paginated=True)

        assert outcome is None
        assert len(transport.sent) == 2

    def test_cancel_is_not_logged_as_error(self, caplog):
        caplog.set_level(logging.DEBUG, logger="method_tester")
        transport = ScriptedTransport(*[_linked_page(n) for n in range(3)])
        session = ExecutionSession(transport=transport)
        transport.on_send = lambda spec: session.cancel()

        assert session.execute(_spec()) is None
        assert session.execute(_spec(pagination=PaginationPolicy()), paginated=True) is None

        assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []

    def test_cancel_when_idle(self):
        assert ExecutionSession(transport=ScriptedTransport(ok())).cancel() is False
