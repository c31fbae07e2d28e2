from __future__ import annotations

from pathlib import Path

from cfworker_bot.sessions import Step

from conftest import ADMIN_ID, USER_ID, BotHarness, envelope, make_config


def test_start_for_unknown_user_asks_for_name(bot: BotHarness) -> None:
    bot.text(USER_ID, "/start")

    assert bot.step(USER_ID) is Step.INPUT_NAME
    assert "belum terdaftar" in bot.transport.last.text


def test_name_registers_and_notifies_admin(bot: BotHarness) -> None:
    bot.text(USER_ID, "/start")
    bot.text(USER_ID, "Budi Santoso")

    assert bot.step(USER_ID) is Step.WAITING_APPROVAL
    record = bot.registry.get(USER_ID)
    assert record is not None and record.approved is False
    assert record.display_name == "Budi Santoso"

    user_msg, admin_msg = bot.transport.messages[-2:]
    assert user_msg.chat_id == int(USER_ID)
    assert admin_msg.chat_id == int(ADMIN_ID)
    assert admin_msg.buttons() == [f"approve|{USER_ID}"]
    assert "Budi Santoso" in admin_msg.text


def test_waiting_user_gets_reminder(bot: BotHarness) -> None:
    bot.text(USER_ID, "/start")
    bot.text(USER_ID, "Budi")

    bot.text(USER_ID, "halo?")
    bot.text(USER_ID, "/start")

    assert bot.step(USER_ID) is Step.WAITING_APPROVAL
    assert "menunggu persetujuan admin" in bot.transport.last.text


def test_admin_button_approves_and_starts_credential_capture(bot: BotHarness) -> None:
    bot.text(USER_ID, "/start")
    bot.text(USER_ID, "Budi")

    bot.press(ADMIN_ID, f"approve|{USER_ID}")

    assert bot.registry.is_approved(USER_ID)
    assert bot.step(USER_ID) is Step.INPUT_API_TOKEN
    assert bot.transport.last.chat_id == int(USER_ID)
    assert "API Token" in bot.transport.last.text
    admin_texts = [m.text for m in bot.transport.messages if m.chat_id == int(ADMIN_ID)]
    assert "sudah disetujui" in admin_texts[-1]
    assert bot.transport.answers[-1] == ("cb-1", "Disetujui.", False)


def test_non_admin_cannot_approve(bot: BotHarness) -> None:
    bot.text(USER_ID, "/start")
    bot.text(USER_ID, "Budi")
    bot.text("77", "/start")

    bot.press("77", f"approve|{USER_ID}")
    bot.text("77", f"/approve {USER_ID}")

    assert bot.registry.is_approved(USER_ID) is False
    assert bot.step(USER_ID) is Step.WAITING_APPROVAL
    assert bot.transport.answers[-1][1].startswith("⛔")
    assert bot.transport.answers[-1][2] is True
    assert "Hanya admin" in bot.transport.last.text


def test_approve_command_reports_unknown_and_repeated(bot: BotHarness) -> None:
    bot.text(USER_ID, "/start")
    bot.text(USER_ID, "Budi")

    bot.text(ADMIN_ID, "/approve 555")
    assert "tidak ditemukan" in bot.transport.last.text

    bot.text(ADMIN_ID, f"/approve {USER_ID}")
    assert bot.registry.is_approved(USER_ID)

    bot.text(ADMIN_ID, f"/approve {USER_ID}")
    assert "sudah disetujui" in bot.transport.last.text
    assert bot.step(USER_ID) is Step.INPUT_API_TOKEN


def test_credential_capture_logs_in(bot: BotHarness) -> None:
    bot.approve()
    bot.sessions.set_step(USER_ID, Step.INPUT_API_TOKEN)
    bot.api.on("GET", "/accounts/A1/workers/scripts", envelope([{"id": "w1"}]))

    bot.text(USER_ID, "T1")
    assert bot.step(USER_ID) is Step.INPUT_ACCOUNT_ID
    bot.text(USER_ID, "A1")
    assert bot.step(USER_ID) is Step.INPUT_KV_NAMESPACE_ID
    bot.text(USER_ID, "-")

    session = bot.sessions.get(USER_ID)
    assert session.step is Step.LOGGED_IN
    assert session.credentials.api_token == "T1"
    assert session.credentials.account_id == "A1"
    assert session.credentials.kv_namespace_id is None
    assert bot.transport.last.buttons()[0] == "deploy_worker"


def test_credential_capture_with_zone_step() -> None:
    bot = BotHarness(make_config(ask_zone_id=True))
    bot.approve()
    bot.sessions.set_step(USER_ID, Step.INPUT_API_TOKEN)
    bot.api.on("GET", "/accounts/A1/workers/scripts", envelope([]))

    bot.text(USER_ID, "T1")
    bot.text(USER_ID, "A1")
    assert bot.step(USER_ID) is Step.INPUT_ZONE_ID
    bot.text(USER_ID, "zone-9")
    bot.text(USER_ID, "kv-7")

    session = bot.sessions.get(USER_ID)
    assert session.step is Step.LOGGED_IN
    assert session.credentials.zone_id == "zone-9"
    assert session.credentials.kv_namespace_id == "kv-7"


def test_admin_start_is_auto_approved(bot: BotHarness) -> None:
    bot.text(ADMIN_ID, "/start")

    assert bot.registry.is_approved(ADMIN_ID)
    assert bot.step(ADMIN_ID) is Step.AWAIT_ACCOUNT_ID


def test_unapproved_user_cannot_use_menu(bot: BotHarness) -> None:
    bot.registry.register(USER_ID, "Budi")
    bot.sessions.set_step(USER_ID, Step.LOGGED_IN)

    bot.press(USER_ID, "list_workers")

    assert bot.api.requests == []
    assert bot.transport.answers[-1][1] == "Silakan login dulu."


def test_unsaved_registration_is_reported_and_can_be_retried(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    bot = BotHarness(db_file=blocker / "users.json")
    bot.text(USER_ID, "/start")

    bot.text(USER_ID, "Budi")

    assert bot.step(USER_ID) is Step.INPUT_NAME
    assert bot.registry.get(USER_ID) is None
    assert "gagal disimpan" in bot.transport.last.text
    assert all(m.chat_id != int(ADMIN_ID) for m in bot.transport.messages)

    blocker.unlink()
    bot.text(USER_ID, "Budi")

    assert bot.step(USER_ID) is Step.WAITING_APPROVAL
    assert bot.transport.last.chat_id == int(ADMIN_ID)
    assert bot.transport.last.buttons() == [f"approve|{USER_ID}"]


def test_unsaved_approval_is_reported_to_admin(tmp_path: Path) -> None:
    db_file = tmp_path / "users.json"
    bot = BotHarness(db_file=db_file)
    bot.text(USER_ID, "/start")
    bot.text(USER_ID, "Budi")
    db_file.unlink()
    db_file.mkdir()

    bot.text(ADMIN_ID, f"/approve {USER_ID}")

    assert "gagal disimpan" in bot.transport.last.text
    assert bot.registry.is_approved(USER_ID) is False
    assert bot.step(USER_ID) is Step.WAITING_APPROVAL
