"""Tests for the kopf handlers."""

import socket
from unittest.mock import MagicMock

import kopf
import pytest
from kubernetes import client as k8s_client

import handlers
from models import ListPolicy, OperatorSettings
from sync import SyncCoordinator

ALLOWED = {"operator.cnwan.io/allowed": "yes"}


def _body(annotations=None, service_type="LoadBalancer"):
    return {
        "metadata": {
            "name": "web",
            "namespace": "prod",
            "annotations": (
                {"cnwan.io/traffic": "video"} if annotations is None else annotations
            ),
        },
        "spec": {"type": service_type, "ports": [{"port": 80}]},
        "status": {"loadBalancer": {"ingress": [{"ip": "203.0.113.10"}]}},
    }


@pytest.fixture
def warnings(monkeypatch):
    emitted = []
    monkeypatch.setattr(
        kopf, "warn", lambda body, reason, message: emitted.append((reason, message))
    )
    return emitted


@pytest.fixture
def operator(monkeypatch, registry):
    """Wire the handler to the in-memory registry."""

    class Operator:
        policy = ListPolicy.ALLOWLIST
        labels = ALLOWED

    def settings():
        return OperatorSettings(
            project="my-project",
            region="us-west2",
            allowed_annotations=("cnwan.io/*",),
            namespace_list_policy=Operator.policy,
        )

    coordinator = SyncCoordinator(registry)
    monkeypatch.setattr(handlers.state, "get_settings", settings)
    monkeypatch.setattr(handlers, "get_coordinator", lambda: coordinator)
    monkeypatch.setattr(handlers, "_namespace_labels", lambda namespace: Operator.labels)
    return Operator


def _handle(event_type, body):
    handlers.service_event(
        event={"type": event_type, "object": body},
        body=body,
        name=body["metadata"]["name"],
        namespace=body["metadata"]["namespace"],
    )


class TestServiceEvent:
    """Tests for service_event handler."""

    def test_registers_service(self, operator, registry, warnings):
        _handle("ADDED", _body())

        assert ("prod", "web") in registry.services
        assert dict(registry.services[("prod", "web")].metadata) == {
            "cnwan.io/traffic": "video",
            "owner": "cnwan-operator",
        }
        assert len(registry.endpoints) == 1
        assert warnings == []

    def test_deleted_event_removes_service(self, operator, registry, warnings):
        _handle("ADDED", _body())

        _handle("DELETED", _body())

        assert registry.services == {}
        assert registry.namespaces == {}

    def test_no_allowed_annotations_removes_service(self, operator, registry, warnings):
        _handle("ADDED", _body())

        _handle("MODIFIED", _body(annotations={"team": "net"}))

        assert registry.services == {}

    def test_no_endpoints_removes_service(self, operator, registry, warnings):
        _handle("ADDED", _body())

        _handle("MODIFIED", _body(service_type="ClusterIP"))

        assert registry.services == {}

    def test_namespace_not_allowed(self, operator, registry, warnings):
        operator.labels = {}

        _handle("ADDED", _body())

        assert registry.calls == []

    def test_blocklist(self, operator, registry, warnings):
        operator.policy = ListPolicy.BLOCKLIST
        operator.labels = {"operator.cnwan.io/blocked": ""}

        _handle("ADDED", _body())

        assert registry.calls == []

    def test_missing_namespace_is_ignored(self, operator, registry, monkeypatch):
        monkeypatch.setattr(handlers, "_namespace_labels", lambda namespace: None)

        _handle("ADDED", _body())

        assert registry.calls == []

    def test_failure_emits_warning(self, operator, registry, warnings):
        registry.fail("create_service")

        _handle("ADDED", _body())

        assert len(warnings) == 1
        reason, message = warnings[0]
        assert reason == "SyncFailed"
        assert "create_service" in message

    def test_failed_deletion_is_only_logged(self, operator, registry, warnings):
        _handle("ADDED", _body())
        registry.fail("delete_service")

        _handle("DELETED", _body())

        assert warnings == []
        assert ("prod", "web") in registry.services

    def test_deletion_does_not_resolve_addresses(self, operator, registry, monkeypatch):
        _handle("ADDED", _body())

        def unresolvable(*args, **kwargs):
            raise socket.gaierror("Name or service not known")

        monkeypatch.setattr(socket, "getaddrinfo", unresolvable)
        body = _body()
        body["status"] = {
            "loadBalancer": {"ingress": [{"hostname": "lb.example.invalid"}]}
        }

        _handle("DELETED", body)

        assert registry.services == {}

    def test_resolution_failure_emits_warning(
        self, operator, registry, warnings, monkeypatch
    ):
        def unresolvable(*args, **kwargs):
            raise socket.gaierror("Name or service not known")

        monkeypatch.setattr(socket, "getaddrinfo", unresolvable)
        body = _body()
        body["status"] = {
            "loadBalancer": {"ingress": [{"hostname": "lb.example.invalid"}]}
        }

        _handle("ADDED", body)

        assert registry.mutating_calls() == []
        assert [reason for reason, _ in warnings] == ["ResolveFailed"]

    def test_deleted_with_its_namespace(self, operator, registry, monkeypatch):
        _handle("ADDED", _body())
        monkeypatch.setattr(handlers, "_namespace_labels", lambda namespace: None)

        _handle("DELETED", _body())

        assert registry.services == {}


def _k8s_service(name, annotations):
    return k8s_client.V1Service(
        metadata=k8s_client.V1ObjectMeta(
            name=name, namespace="prod", annotations=annotations
        ),
        spec=k8s_client.V1ServiceSpec(
            type="LoadBalancer", ports=[k8s_client.V1ServicePort(port=80)]
        ),
        status=k8s_client.V1ServiceStatus(
            load_balancer=k8s_client.V1LoadBalancerStatus(
                ingress=[k8s_client.V1LoadBalancerIngress(ip="203.0.113.10")]
            )
        ),
    )


class TestNamespaceHandlers:
    """Tests for namespace_labels_changed and namespace_deleted handlers."""

    @pytest.fixture(autouse=True)
    def core_api(self, monkeypatch, operator):
        api = MagicMock()
        api.list_namespaced_service.return_value = k8s_client.V1ServiceList(
            items=[
                _k8s_service("web", {"cnwan.io/traffic": "video"}),
                _k8s_service("api", {"cnwan.io/traffic": "voice"}),
                _k8s_service("internal", {"team": "net"}),
            ]
        )
        monkeypatch.setattr(handlers, "get_k8s_core_api", lambda: api)
        return api

    def test_namespace_becomes_watched(self, registry, core_api):
        handlers.namespace_labels_changed(name="prod", old={}, new=ALLOWED)

        core_api.list_namespaced_service.assert_called_once_with("prod")
        assert set(registry.services) == {("prod", "web"), ("prod", "api")}
        assert dict(registry.services[("prod", "api")].metadata) == {
            "cnwan.io/traffic": "voice",
            "owner": "cnwan-operator",
        }

    def test_namespace_no_longer_watched(self, registry):
        handlers.namespace_labels_changed(name="prod", old={}, new=ALLOWED)

        handlers.namespace_labels_changed(name="prod", old=ALLOWED, new=None)

        assert registry.services == {}
        assert registry.namespaces == {}

    def test_watch_state_unchanged(self, registry, core_api):
        handlers.namespace_labels_changed(
            name="prod", old=ALLOWED, new={**ALLOWED, "team": "net"}
        )
        handlers.namespace_labels_changed(name="prod", old={}, new={"team": "net"})

        core_api.list_namespaced_service.assert_not_called()
        assert registry.calls == []

    def test_blocklist_transition(self, operator, registry):
        operator.policy = ListPolicy.BLOCKLIST

        handlers.namespace_labels_changed(
            name="prod", old={"operator.cnwan.io/blocked": ""}, new={}
        )

        assert set(registry.services) == {("prod", "web"), ("prod", "api")}

    def test_one_failure_does_not_stop_others(self, registry):
        registry.fail("create_service", "web")

        handlers.namespace_labels_changed(name="prod", old={}, new=ALLOWED)

        assert set(registry.services) == {("prod", "api")}

    def test_watched_namespace_deleted(self, registry):
        handlers.namespace_labels_changed(name="prod", old={}, new=ALLOWED)

        handlers.namespace_deleted(name="prod", meta={"labels": ALLOWED})

        assert registry.services == {}

    def test_unwatched_namespace_deleted(self, registry, core_api):
        handlers.namespace_deleted(name="prod", meta={"labels": {}})

        core_api.list_namespaced_service.assert_not_called()
        assert registry.calls == []

    def test_listing_failure_is_logged(self, registry, core_api):
        core_api.list_namespaced_service.side_effect = k8s_client.ApiException(
            status=500
        )

        handlers.namespace_labels_changed(name="prod", old={}, new=ALLOWED)

        assert registry.calls == []
