"""Tests for the client integration registry."""

import asyncio
from types import SimpleNamespace

import httpx
import pytest

from conftest import manifest_data
from extensions.errors import ExtensionError, NotFoundError, ValidationError
from extensions.manifest import ExtensionManifest
from integrations import (
    ApiClientError,
    ContributionKind,
    ExtensionApiClient,
    ExtensionFramework,
    FrameworkStatus,
    HookName,
    Integration,
    IntegrationManager,
    SlotManager,
    SlotRegistration,
    resolve_contribution,
)
from integrations.framework import PLUGIN_COMPONENT_SLOT


def Banner(props):
    return f"banner:{props}"


def Footer(props):
    return "footer"


class TestSlotManager:
    """Tests for slot registrations."""

    def test_priority_order(self):
        """Higher priority components come first."""
        slots = SlotManager()
        slots.register("app.footer", SlotRegistration(component=Footer, source="a", priority=1))
        slots.register("app.footer", SlotRegistration(component=Banner, source="b", priority=10))

        assert [r.source for r in slots.get_components("app.footer")] == ["b", "a"]

    def test_same_source_replaces(self):
        """A source has at most one registration per slot."""
        slots = SlotManager()
        slots.register("app.footer", SlotRegistration(component=Footer, source="a"))
        slots.register("app.footer", SlotRegistration(component=Banner, source="a"))

        components = slots.get_components("app.footer")
        assert len(components) == 1
        assert components[0].component is Banner

    def test_unregister_by_source(self):
        """Removing a source clears it from every slot and drops empty slots."""
        slots = SlotManager()
        slots.register("app.footer", SlotRegistration(component=Footer, source="a"))
        slots.register("app.header", SlotRegistration(component=Banner, source="a"))
        slots.register("app.header", SlotRegistration(component=Footer, source="b"))

        assert slots.unregister_by_source("a") == 2
        assert "app.footer" not in slots
        assert [r.source for r in slots.get_components("app.header")] == ["b"]

    def test_conditions_and_props(self):
        """Conditions filter components; caller props override registration props."""
        slots = SlotManager()
        slots.register(
            "post.actions",
            SlotRegistration(
                component=Banner,
                source="a",
                condition=lambda props: props.get("user") == "admin",
                props={"size": "small", "user": None},
            ),
        )

        def broken(props):
            raise RuntimeError("boom")

        slots.register("post.actions", SlotRegistration(component=Footer, source="b", condition=broken))

        assert slots.has_components("post.actions", {"user": "guest"}) is False
        resolved = slots.resolve("post.actions", {"user": "admin"})
        assert [r.source for r in resolved] == ["a"]
        assert dict(resolved[0].props) == {"size": "small", "user": "admin"}

    def test_stats(self):
        """Stats count slots and components."""
        slots = SlotManager()
        slots.register("app.footer", SlotRegistration(component=Footer, source="a"))
        slots.register("app.footer", SlotRegistration(component=Banner, source="b"))

        assert slots.stats() == {"totalSlots": 1, "totalComponents": 2, "slots": {"app.footer": 2}}


class TestIntegrationManager:
    """Tests for integration hooks."""

    def test_failing_hook_does_not_stop_others(self):
        """One failing hook is logged; the rest still run."""
        calls = []

        def bad(ctx):
            raise RuntimeError("boom")

        manager = IntegrationManager()
        manager.register(Integration("bad", {HookName.APP_START: bad}))
        manager.register(Integration("good", {"app:start": lambda ctx: calls.append(ctx.hook)}))

        result = manager.execute_hook(HookName.APP_START)

        assert result.failed == ["bad"]
        assert result.succeeded == ["good"]
        assert result.ok is False
        assert calls == ["app:start"]

    def test_async_hook_runs_without_loop(self):
        """Coroutine hooks complete when no event loop is running."""
        calls = []

        async def started(ctx):
            await asyncio.sleep(0)
            calls.append(ctx.hook)

        manager = IntegrationManager()
        manager.register(Integration("async", {"app:started": started}))
        manager.execute_hook("app:started")

        assert calls == ["app:started"]

    def test_execute_hook_async(self):
        """The async variant awaits hooks in registration order."""
        calls = []

        async def first(ctx):
            calls.append("first")

        def second(ctx):
            calls.append("second")

        manager = IntegrationManager()
        manager.register(Integration("first", {"app:start": first}))
        manager.register(Integration("second", {"app:start": second}))

        result = asyncio.run(manager.execute_hook_async("app:start"))

        assert calls == ["first", "second"]
        assert result.succeeded == ["first", "second"]

    def test_unregister_prefix(self):
        """Unregistering a name also removes names namespaced under it, running app:destroy."""
        destroyed = []
        manager = IntegrationManager()
        for name in ("seo", "seo:sitemap", "seo.meta", "seoish"):
            manager.register(
                Integration(name, {"app:destroy": lambda ctx, name=name: destroyed.append(name)})
            )

        assert manager.unregister("seo") is True
        assert manager.names() == ["seoish"]
        assert sorted(destroyed) == ["seo", "seo.meta", "seo:sitemap"]
        assert manager.unregister("seo") is False

    def test_failing_async_hook_without_loop_is_reported(self):
        """A coroutine hook that raises counts as failed when run to completion."""

        async def broken(ctx):
            raise RuntimeError("boom")

        manager = IntegrationManager()
        manager.register(Integration("async-bad", {"app:started": broken}))

        result = manager.execute_hook("app:started")

        assert result.failed == ["async-bad"]
        assert result.succeeded == []

    def test_unregister_by_source_matches_names_exactly(self):
        """Removing a source leaves other sources' namespaced integrations alone."""
        manager = IntegrationManager()
        manager.register(Integration("seo", {}, source="seo-ext"))
        manager.register(Integration("seo:sitemap", {}, source="sitemap-ext"))

        assert manager.unregister_by_source("seo-ext") == 1
        assert manager.names() == ["seo:sitemap"]

    def test_register_after_ready_replays_hooks(self):
        """Late registrations get the ready hooks immediately."""
        calls = []
        manager = IntegrationManager()
        manager.ready = True

        manager.register(
            Integration(
                "late",
                {
                    "framework:ready": lambda ctx: calls.append(ctx.hook),
                    "app:started": lambda ctx: calls.append(ctx.hook),
                },
            )
        )

        assert calls == ["framework:ready", "app:started"]

    def test_stats(self):
        """Stats count integrations and hooks."""
        manager = IntegrationManager()
        manager.register(Integration("a", {"app:start": lambda ctx: None}))
        manager.register(Integration("b"))

        assert manager.stats() == {"total": 2, "withHooks": 1, "hookCounts": {"app:start": 1}}


class TestResolveContribution:
    """Tests for normalizing extension modules."""

    def test_descriptor_mapping(self):
        """A mapping with name and hooks is an integration."""
        contribution = resolve_contribution("seo", {"name": "seo", "hooks": {"app:start": lambda ctx: None}})

        assert contribution.kind == ContributionKind.INTEGRATION
        assert contribution.integration.source == "seo"

    def test_register_function(self):
        """An object with a callable register is a register contribution."""
        module = SimpleNamespace(register=lambda framework: None)

        assert resolve_contribution("x", module).kind == ContributionKind.REGISTER

    def test_component(self):
        """A bare callable is a component."""
        contribution = resolve_contribution("x", Banner)

        assert contribution.kind == ContributionKind.COMPONENT
        assert contribution.component is Banner

    def test_unknown_shape(self):
        """Anything else is rejected."""
        with pytest.raises(ValidationError, match="Unknown plugin format for: x"):
            resolve_contribution("x", {"hooks": "nope"})


def api_handler(active):
    """Mock transport answering the extension list endpoint."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/extension" and request.method == "GET":
            items = [{"id": ext_id, "manifest": manifest_data(ext_id)} for ext_id in active]
            return httpx.Response(
                200,
                json={"success": True, "message": "OK", "data": {"items": items, "totalPages": 1}},
            )
        if request.url.path == "/api/extension/missing/enable":
            return httpx.Response(
                404,
                json={"success": False, "message": "Extension not found: missing", "errorCode": "not_found"},
            )
        return httpx.Response(500, text="boom")

    return handler


class TestExtensionApiClient:
    """Tests for the HTTP client."""

    def test_list_follows_pages(self):
        """All pages are fetched until totalPages."""
        seen = []

        def handler(request):
            page = int(request.url.params["pageNumber"])
            seen.append(page)
            assert request.headers["X-Admin-Token"] == "secret"
            return httpx.Response(
                200,
                json={"success": True, "data": {"items": [{"id": f"ext-{page}"}], "totalPages": 2}},
            )

        client = ExtensionApiClient("http://forum", admin_token="secret", transport=httpx.MockTransport(handler))

        assert [e["id"] for e in client.list_extensions()] == ["ext-1", "ext-2"]
        assert seen == [1, 2]

    def test_error_code_maps_to_exception(self):
        """Envelope error codes become the matching exception type."""
        client = ExtensionApiClient("http://forum", transport=httpx.MockTransport(api_handler([])))

        with pytest.raises(NotFoundError, match="missing"):
            client.enable("missing")

    def test_non_envelope_error(self):
        """Errors without an envelope raise ApiClientError."""
        client = ExtensionApiClient("http://forum", transport=httpx.MockTransport(api_handler([])))

        with pytest.raises(ApiClientError):
            client.stats()


class TestExtensionFramework:
    """Tests for the client-side host."""

    def test_initialize_runs_hooks_once(self):
        """Initialize runs startup hooks and is idempotent."""
        calls = []
        framework = ExtensionFramework({"theme": {"mode": "dark"}})
        framework.register(
            Integration("watcher", {"framework:ready": lambda ctx: calls.append(ctx.config["theme"]["mode"])})
        )

        framework.initialize({"theme": {"density": "compact"}})
        framework.initialize()

        assert framework.status == FrameworkStatus.READY
        assert calls == ["dark"]
        assert framework.config["theme"] == {"mode": "dark", "density": "compact"}

    def test_load_and_unload(self):
        """Unloading removes slots and integrations contributed by the extension."""
        framework = ExtensionFramework()
        framework.initialize()

        def register(fw):
            fw.register_component("app.footer", SlotRegistration(component=Banner, source="cookie-consent"))
            fw.register(Integration("consent-tracker", {}, source="cookie-consent"))

        manifest = ExtensionManifest.model_validate(manifest_data())
        framework.load_extension(manifest, SimpleNamespace(register=register))

        assert framework.loaded_extensions() == ["cookie-consent"]
        assert "consent-tracker" in framework.integrations

        assert framework.unload_extension("cookie-consent") is True
        assert framework.slots.get_components("app.footer") == ()
        assert "consent-tracker" not in framework.integrations
        assert framework.unload_extension("cookie-consent") is False

    def test_component_module_goes_to_plugin_slot(self):
        """Bare components land in the generic plugin slot."""
        framework = ExtensionFramework()
        manifest = ExtensionManifest.model_validate(manifest_data("analytics"))

        framework.load_extension(manifest, Banner)

        assert [r.source for r in framework.slots.get_components(PLUGIN_COMPONENT_SLOT)] == ["analytics"]

    def test_sync(self):
        """Sync loads newly active extensions and unloads inactive ones."""
        framework = ExtensionFramework()
        framework.initialize()
        framework.load_extension(ExtensionManifest.model_validate(manifest_data("old-plugin")), Footer)
        client = ExtensionApiClient(
            "http://forum",
            transport=httpx.MockTransport(api_handler(["cookie-consent", "analytics", "broken"])),
        )

        result = framework.sync(client, {"cookie-consent": Banner, "broken": {"hooks": 1}})

        assert result.loaded == ["cookie-consent"]
        assert result.unloaded == ["old-plugin"]
        assert result.missing == ["analytics"]
        assert result.failed == ["broken"]
        assert framework.loaded_extensions() == ["cookie-consent"]

    def test_register_function_contributions_are_tagged(self):
        """Everything a register function adds is removed when its extension unloads."""
        framework = ExtensionFramework()

        def register(fw):
            fw.register(Integration("tracker", {}))
            fw.register_component("app.header", SlotRegistration(component=Banner, source="someone-else"))

        manifest = ExtensionManifest.model_validate(manifest_data("analytics-ext"))
        framework.load_extension(manifest, {"register": register})

        assert framework.integrations.get("tracker").source == "analytics-ext"
        assert [r.source for r in framework.slots.get_components("app.header")] == ["analytics-ext"]

        framework.unload_extension("analytics-ext")

        assert framework.integrations.names() == []
        assert framework.slots.get_components("app.header") == ()

    def test_failing_register_rolls_back(self):
        """A register function that raises leaves nothing behind."""
        framework = ExtensionFramework()

        def register(fw):
            fw.register(Integration("half-done", {}))
            raise RuntimeError("boom")

        manifest = ExtensionManifest.model_validate(manifest_data("analytics-ext"))
        with pytest.raises(ExtensionError, match="analytics-ext"):
            framework.load_extension(manifest, {"register": register})

        assert "half-done" not in framework.integrations
        assert framework.loaded_extensions() == []

    def test_sync_records_register_failure(self):
        """A broken register function is reported as failed and sync carries on."""
        framework = ExtensionFramework()
        framework.initialize()
        client = ExtensionApiClient(
            "http://forum",
            transport=httpx.MockTransport(api_handler(["boom", "cookie-consent"])),
        )

        result = framework.sync(client, {"boom": {"register": lambda fw: 1 / 0}, "cookie-consent": Banner})

        assert result.failed == ["boom"]
        assert result.loaded == ["cookie-consent"]
        assert framework.loaded_extensions() == ["cookie-consent"]

    def test_destroy(self):
        """Destroy runs app:destroy and clears everything."""
        calls = []
        framework = ExtensionFramework()
        framework.register(Integration("watcher", {"app:destroy": lambda ctx: calls.append("destroy")}))
        framework.initialize()
        framework.load_extension(ExtensionManifest.model_validate(manifest_data("analytics")), Banner)

        framework.destroy()

        assert calls == ["destroy"]
        assert framework.status == FrameworkStatus.INITIALIZING
        assert framework.loaded_extensions() == []
        assert len(framework.slots) == 0
