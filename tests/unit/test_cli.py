"""
Tests for the micro-api command.

These tests verify:
1. Flag defaults and environment overrides
2. Unknown strategies exit with a configuration error before assembly
3. Selected strategies are wired end to end
4. A run with a pre-triggered shutdown starts, stops, and exits cleanly
5. Server start failures exit with the server error code
"""

import logging
from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

from micro_api.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    EXIT_SERVER_ERROR,
    Command,
)
from micro_api.handlers import WebHandler
from micro_api.lifecycle import ShutdownSignal
from micro_api.resolvers import HostResolver
from micro_api.routers import RegistryRouter, StaticRouter

from conftest import StubHandler, StubResolver, StubRouter, make_request

LOCAL = "--server_address=127.0.0.1:0"


class TestParse:
    def test_defaults(self, monkeypatch):
        for var in (
            "MICRO_API_SERVER_ADDRESS",
            "MICRO_API_NAMESPACE",
            "MICRO_API_ROUTER",
            "MICRO_API_RESOLVER",
            "MICRO_API_HANDLER",
            "MICRO_API_LOG_LEVEL",
            "MICRO_API_SERVICES",
        ):
            monkeypatch.delenv(var, raising=False)

        config = Command().parse([])

        assert config.name == "micro-api"
        assert config.server_address == ":8080"
        assert config.namespace == "go.micro"
        assert config.router == "registry"
        assert config.resolver == "vpath"
        assert config.handler == "rpc"
        assert config.log_level == "info"
        assert config.services == ()

    def test_flags(self):
        config = Command().parse(
            ["--handler=http", "--resolver", "path", "--namespace=acme", "--log_level=DEBUG"]
        )

        assert config.handler == "http"
        assert config.resolver == "path"
        assert config.namespace == "acme"
        assert config.log_level == "debug"

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("MICRO_API_HANDLER", "web")
        monkeypatch.setenv("MICRO_API_SERVER_ADDRESS", ":9090")

        config = Command().parse([])

        assert config.handler == "web"
        assert config.server_address == ":9090"

    def test_flag_beats_environment(self, monkeypatch):
        monkeypatch.setenv("MICRO_API_HANDLER", "web")

        assert Command().parse(["--handler=api"]).handler == "api"

    def test_version_flag(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            Command(version="1.2.3").parse(["--version"])

        assert exc_info.value.code == 0
        assert "micro-api 1.2.3" in capsys.readouterr().out


class TestInit:
    def test_wires_selected_stubs(self, stub_registry):
        cmd = Command(registry=stub_registry)

        pipeline = cmd.init(
            [LOCAL, "--router=static", "--resolver=host", "--handler=web", "--namespace=acme"]
        )

        assert isinstance(pipeline.resolver, StubResolver)
        assert isinstance(pipeline.router, StubRouter)
        assert isinstance(pipeline.handler, StubHandler)
        assert pipeline.resolver.namespace(None) == "acme"
        assert pipeline.resolver.handler == "web"
        assert pipeline.router.resolver is pipeline.resolver
        assert pipeline.handler.router is pipeline.router
        assert pipeline.server.started is False
        assert cmd.registry.frozen is True

    def test_wires_built_in_strategies(self):
        pipeline = Command().init(
            [LOCAL, "--router=static", "--resolver=host", "--handler=web", "--namespace=acme"]
        )

        assert isinstance(pipeline.resolver, HostResolver)
        assert isinstance(pipeline.router, StaticRouter)
        assert isinstance(pipeline.handler, WebHandler)
        assert pipeline.resolver.namespace(None) == "acme"
        assert pipeline.resolver.handler == "web"

    def test_app_is_cors_wrapped(self, stub_registry):
        pipeline = Command(registry=stub_registry).init([LOCAL])
        client = TestClient(pipeline.app)

        response = client.get("/greeter/hello")
        assert response.text == "stub"
        assert response.headers["access-control-allow-origin"] == "*"

        preflight = client.options("/greeter/hello")
        assert preflight.status_code == 200
        assert pipeline.handler.calls == 1


class TestRun:
    def test_unknown_router_exits_before_assembly(self, caplog):
        cmd = Command()

        with caplog.at_level(logging.ERROR), patch(
            "micro_api.cli.assemble_pipeline"
        ) as assemble:
            code = cmd.run([LOCAL, "--router=doesnotexist"])

        assert code == EXIT_CONFIG_ERROR
        assert assemble.call_count == 0
        assert "doesnotexist" in caplog.text
        assert "router" in caplog.text.lower()

    def test_unknown_handler_exits(self):
        assert Command().run([LOCAL, "--handler=soap"]) == EXIT_CONFIG_ERROR

    def test_malformed_address_exits(self):
        assert Command().run(["--server_address=nowhere"]) == EXIT_CONFIG_ERROR

    def test_clean_shutdown(self, stub_registry):
        shutdown = ShutdownSignal()
        shutdown.trigger()

        code = Command(registry=stub_registry).run(
            [LOCAL, "--log_level=warning"], shutdown=shutdown
        )

        assert code == EXIT_OK

    def test_busy_port_exits_with_server_error(self, stub_registry, busy_port):
        code = Command(registry=stub_registry).run(
            [f"--server_address=127.0.0.1:{busy_port}", "--log_level=warning"]
        )

        assert code == EXIT_SERVER_ERROR

    def test_invalid_log_level_flag_is_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            Command().run([LOCAL, "--log_level=warn"])

        assert exc_info.value.code == 2

    def test_invalid_log_level_from_environment_exits(self, monkeypatch, stub_registry):
        monkeypatch.setenv("MICRO_API_LOG_LEVEL", "warn")
        shutdown = ShutdownSignal()
        shutdown.trigger()

        code = Command(registry=stub_registry).run([LOCAL], shutdown=shutdown)

        assert code == EXIT_CONFIG_ERROR

    def test_malformed_service_exits(self):
        assert Command().run([LOCAL, "--service=greeter"]) == EXIT_CONFIG_ERROR


class TestServices:
    def test_flag_is_repeatable(self, monkeypatch):
        monkeypatch.delenv("MICRO_API_SERVICES", raising=False)

        config = Command().parse(
            ["--service", "go.micro.greeter=a:1,b:2", "--service=go.micro.user=c:3"]
        )

        assert config.services == ("go.micro.greeter=a:1,b:2", "go.micro.user=c:3")

    def test_environment_entries(self, monkeypatch):
        monkeypatch.setenv("MICRO_API_SERVICES", "go.micro.greeter=a:1; go.micro.user=c:3")

        config = Command().parse([])

        assert config.services == ("go.micro.greeter=a:1", "go.micro.user=c:3")

    def test_flag_beats_environment(self, monkeypatch):
        monkeypatch.setenv("MICRO_API_SERVICES", "go.micro.user=c:3")

        config = Command().parse(["--service=go.micro.greeter=a:1"])

        assert config.services == ("go.micro.greeter=a:1",)

    def test_default_router_routes_configured_service(self):
        pipeline = Command().init(
            [LOCAL, "--service", "go.micro.greeter=10.0.0.1:9000,10.0.0.2:9000"]
        )

        assert isinstance(pipeline.router, RegistryRouter)
        route = pipeline.router.route(make_request("/greeter/say/hello"))
        assert route.service == "go.micro.greeter"
        assert route.nodes == ["10.0.0.1:9000", "10.0.0.2:9000"]

    def test_static_router_routes_configured_service(self):
        pipeline = Command().init(
            [LOCAL, "--router=static", "--namespace=acme", "--service=acme.users=u:8000"]
        )

        assert isinstance(pipeline.router, StaticRouter)
        assert pipeline.router.route(make_request("/users")).nodes == ["u:8000"]
