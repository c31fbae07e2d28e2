from __future__ import annotations

import json

from cfworker_bot.sessions import Step

from conftest import USER_ID, BotHarness, envelope, make_config

SCRIPTS = "/accounts/A1/workers/scripts"
NAMESPACES = "/accounts/A1/storage/kv/namespaces"
SETTINGS = "/accounts/A1/workers/scripts/w1/settings"


def _settings_part(request) -> dict:
    body = request.content.decode("utf-8")
    start = body.index("{")
    end = body.rindex("}") + 1
    return json.loads(body[start:end])


def _seed(bot: BotHarness) -> None:
    bot.api.on("GET", SCRIPTS, envelope([{"id": "w1"}, {"id": "w2"}]))
    bot.api.on("GET", NAMESPACES, envelope([{"id": "kv1", "title": "cache"}, {"id": "kv2", "title": "sessions"}]))


def _assert_transient_cleared(bot: BotHarness) -> None:
    session = bot.sessions.get(USER_ID)
    assert session.step is Step.LOGGED_IN
    assert session.binding_worker is None
    assert session.worker_list == []
    assert session.kv_list == []


def test_binding_flow_patches_selected_worker_once(bot: BotHarness) -> None:
    bot.login()
    _seed(bot)
    bot.api.on("PATCH", SETTINGS, envelope({"bindings": []}))

    bot.press(USER_ID, "bind_kv")
    assert bot.step(USER_ID) is Step.BINDING_SELECT_WORKER
    assert bot.transport.last.buttons() == ["bw|0", "bw|1", "cancel"]

    bot.press(USER_ID, "bw|0")
    assert bot.step(USER_ID) is Step.BINDING_SELECT_KV
    assert bot.sessions.get(USER_ID).binding_worker == "w1"
    assert bot.transport.last.buttons() == ["bk|0", "bk|1", "cancel"]

    bot.press(USER_ID, "bk|0")

    patches = bot.api.calls("PATCH")
    assert len(patches) == 1
    assert patches[0].url.path.endswith(SETTINGS)
    assert _settings_part(patches[0]) == {
        "bindings": [{"type": "kv_namespace", "name": "KV", "namespace_id": "kv1"}]
    }
    assert "berhasil di-binding" in bot.transport.last.text
    _assert_transient_cleared(bot)


def test_binding_uses_configured_binding_name() -> None:
    bot = BotHarness(make_config(kv_binding_name="CACHE"))
    bot.login()
    _seed(bot)
    bot.api.on("PATCH", SETTINGS, envelope({}))

    bot.press(USER_ID, "bind_kv")
    bot.press(USER_ID, "bw|0")
    bot.press(USER_ID, "bk|1")

    bindings = _settings_part(bot.api.calls("PATCH")[0])["bindings"]
    assert bindings == [{"type": "kv_namespace", "name": "CACHE", "namespace_id": "kv2"}]


def test_binding_failure_clears_transient_state(bot: BotHarness) -> None:
    bot.login()
    _seed(bot)
    bot.api.on(
        "PATCH",
        SETTINGS,
        envelope(success=False, errors=[{"code": 10021, "message": "binding rejected"}]),
        status=400,
    )

    bot.press(USER_ID, "bind_kv")
    bot.press(USER_ID, "bw|0")
    bot.press(USER_ID, "bk|0")

    assert len(bot.api.calls("PATCH")) == 1
    assert "Binding KV gagal" in bot.transport.last.text
    assert "binding rejected" in bot.transport.last.text
    _assert_transient_cleared(bot)


def test_kv_listing_failure_ends_binding(bot: BotHarness) -> None:
    bot.login()
    bot.api.on("GET", SCRIPTS, envelope([{"id": "w1"}]))

    bot.press(USER_ID, "bind_kv")
    bot.press(USER_ID, "bw|0")

    assert "Gagal mengambil daftar KV Namespace" in bot.transport.last.text
    assert bot.api.calls("PATCH") == []
    _assert_transient_cleared(bot)


def test_no_workers_to_bind(bot: BotHarness) -> None:
    bot.login()

    bot.press(USER_ID, "bind_kv")

    assert bot.step(USER_ID) is Step.LOGGED_IN
    assert "Belum ada Worker" in bot.transport.last.text


def test_out_of_range_selection_is_rejected(bot: BotHarness) -> None:
    bot.login()
    _seed(bot)
    bot.press(USER_ID, "bind_kv")

    bot.press(USER_ID, "bw|9")
    bot.press(USER_ID, "bw|x")

    assert bot.transport.answers[-1] == ("cb-1", "Pilihan tidak valid.", True)
    assert bot.step(USER_ID) is Step.BINDING_SELECT_WORKER
    assert bot.api.calls("GET", NAMESPACES) == []


def test_stale_selection_button_is_ignored(bot: BotHarness) -> None:
    bot.login()
    _seed(bot)

    bot.press(USER_ID, "bk|0")

    assert bot.transport.answers[-1] == ("cb-1", "Sesi binding sudah berakhir.", True)
    assert bot.api.calls("PATCH") == []


def test_text_during_selection_keeps_step(bot: BotHarness) -> None:
    bot.login()
    _seed(bot)
    bot.press(USER_ID, "bind_kv")

    bot.text(USER_ID, "w1")

    assert bot.step(USER_ID) is Step.BINDING_SELECT_WORKER
    assert "tombol pilihan" in bot.transport.last.text


def test_cancel_during_selection(bot: BotHarness) -> None:
    bot.login()
    _seed(bot)
    bot.press(USER_ID, "bind_kv")
    bot.press(USER_ID, "bw|1")

    bot.press(USER_ID, "cancel")

    _assert_transient_cleared(bot)
    assert bot.api.calls("PATCH") == []


def test_binding_steps_are_recorded_in_history(bot: BotHarness) -> None:
    bot.login()
    _seed(bot)
    bot.api.on("PATCH", SETTINGS, envelope({}))

    bot.press(USER_ID, "bind_kv")
    bot.press(USER_ID, "bw|0")
    bot.press(USER_ID, "bk|0")

    details = [entry.detail for entry in bot.sessions.get(USER_ID).history if entry.action == "bind_kv"]
    assert details == ["daftar worker: 2", "daftar kv untuk w1: 2", "w1 <- kv1"]


def test_empty_worker_listing_is_recorded(bot: BotHarness) -> None:
    bot.login()

    bot.press(USER_ID, "bind_kv")

    last = bot.sessions.get(USER_ID).history[-1]
    assert (last.action, last.detail) == ("bind_kv", "daftar worker: 0")
