import httpx
import pytest
import yaml

from conftest import FakeGateway, counter, read_config
from dcb_lending import cli
from dcb_lending.error_handler import ConfigurationError, FlowAborted
from dcb_lending.flows.drawdown import DrawdownOrchestrator, format_amount
from dcb_lending.integrations.clients.real_http.lending_api import RequestExecutor
from dcb_lending.integrations.contracts.interfaces import DrawdownState

OK = {"code": "0000", "message": "Success", "data": {}}
INSTALLMENTS = {
    "code": "0000",
    "data": {"drawdownToken": "abc", "installmentPlan": [{"tenor": 6}, {"tenor": 12}]},
}
AMORTIZATION = {"code": "0000", "data": {"schedule": [{"period": 1, "principal": 416.67}]}}


def _routes(**overrides):
    routes = {
        "/installmentation": INSTALLMENTS,
        "/submit-to-saving": OK,
        "/confirm-to-saving": OK,
        "/confirm-to-biller": OK,
        "/amortization-table": AMORTIZATION,
    }
    routes.update(overrides)
    return routes


def _orchestrator(code, institution, executor, extractor):
    return DrawdownOrchestrator(
        code,
        institution,
        executor,
        extractor,
        request_id_factory=counter("req"),
        trace_parent_factory=lambda: "00-" + "a" * 32 + "-" + "b" * 16 + "-01",
    )


def test_end_to_end_selected_plan_drives_submit_and_amortization(ktb, make_executor, extractor):
    gateway = FakeGateway(_routes())

    session = _orchestrator("ktb", ktb, make_executor(gateway), extractor).run()

    assert gateway.paths == [
        "/dcb/lending/v1/drawdown/installmentation",
        "/dcb/lending/v1/drawdown/submit-to-saving",
        "/dcb/lending/v1/drawdown/confirm-to-saving",
        "/dcb/lending/v1/drawdown/amortization-table",
    ]
    assert gateway.body(0) == {
        "locAccountNo": "1640000240",
        "toAccountNo": "1640000231",
        "productMarketCode": "1207",
        "disburseAmount": 5000.0,
        "currency": "THB",
        "channelId": "KTB",
    }
    assert gateway.body(1) == {"drawdownToken": "abc", "channelTxnRefId": "req-1", "selectedPlanId": 1}
    assert gateway.body(3) == {"accountNumber": "1640000240", "drawdownAmount": 5000.0, "tenor": "12"}
    assert session.state is DrawdownState.AMORTIZATION_FETCHED
    assert session.amortization == AMORTIZATION["data"]


def test_one_trace_parent_and_fresh_request_id_per_step(ktb, make_executor, extractor):
    gateway = FakeGateway(_routes())

    session = _orchestrator("ktb", ktb, make_executor(gateway), extractor).run()

    trace_parents = {r.headers["x-traceparent"] for r in gateway.requests}
    request_ids = [r.headers["x-request-id"] for r in gateway.requests]
    assert trace_parents == {session.trace_parent}
    assert request_ids == ["req-2", "req-3", "req-4", "req-5"]
    assert all(r.headers["x-devops-dest"] == "ktb-dlp" for r in gateway.requests)


def test_empty_token_aborts_before_plan_selection(ktb, make_executor, extractor):
    gateway = FakeGateway(_routes(**{"/installmentation": {"code": "0000", "data": {"drawdownToken": ""}}}))
    orchestrator = _orchestrator("ktb", ktb, make_executor(gateway), extractor)

    with pytest.raises(FlowAborted):
        orchestrator.run()

    assert len(gateway.requests) == 1
    assert orchestrator.session.state is DrawdownState.ABORTED


def test_saving_confirmation_carries_note(ktb, make_executor, extractor):
    gateway = FakeGateway(_routes())

    _orchestrator("ktb", ktb, make_executor(gateway), extractor).run()

    assert gateway.body(2) == {"drawdownToken": "abc", "note": "DISBURSEMENT"}


def test_bill_confirmation_sends_only_token(vb, make_executor, extractor):
    gateway = FakeGateway(_routes())

    _orchestrator("vb", vb, make_executor(gateway), extractor).run()

    assert gateway.paths[2] == "/dcb/lending/v1/drawdown/confirm-to-biller"
    assert gateway.body(2) == {"drawdownToken": "abc"}
    assert gateway.body(0)["ccdId"] == "ccd-9"
    # selected_plan_id 0 -> tenor 6; amount formatted as a string for this profile
    assert gateway.body(3) == {"accountNumber": "0700000123", "drawdownAmount": "5000", "tenor": "6"}


def test_unknown_drawdown_type_issues_no_calls(ktb, make_executor, extractor):
    ktb.drawdown_type = "wallet"
    gateway = FakeGateway(_routes())

    with pytest.raises(ConfigurationError, match="Must be 'Saving' or 'bill'"):
        _orchestrator("ktb", ktb, make_executor(gateway), extractor).run()

    assert gateway.requests == []


def test_missing_required_field_issues_no_calls(ktb, make_executor, extractor):
    ktb.selected_plan_id = None
    gateway = FakeGateway(_routes())

    with pytest.raises(ConfigurationError, match="ktb.selected_plan_id"):
        _orchestrator("ktb", ktb, make_executor(gateway), extractor).run()

    assert gateway.requests == []


def test_rejected_confirmation_stops_the_flow(ktb, make_executor, extractor, error_log):
    gateway = FakeGateway(_routes(**{"/confirm-to-saving": {"code": "E2001", "message": "Token expired"}}))
    orchestrator = _orchestrator("ktb", ktb, make_executor(gateway), extractor)

    with pytest.raises(FlowAborted) as exc_info:
        orchestrator.run()

    assert exc_info.value.code == "E2001"
    assert len(gateway.requests) == 3
    assert orchestrator.session.state is DrawdownState.ABORTED
    assert "Error in CONFIRM_DRAWDOWN - Code E2001 - Token expired" in error_log.path.read_text(encoding="utf-8")


def test_plan_index_outside_returned_plans_aborts(ktb, make_executor, extractor):
    ktb.selected_plan_id = 5
    gateway = FakeGateway(_routes())

    with pytest.raises(FlowAborted, match="outside the 2 installment plans"):
        _orchestrator("ktb", ktb, make_executor(gateway), extractor).run()

    assert len(gateway.requests) == 1


def test_format_amount():
    assert format_amount(5000.0) == "5000"
    assert format_amount(1234.5) == "1234.5"
    assert format_amount(10) == "10"


def _patch_cli_executor(monkeypatch, gateway):
    monkeypatch.setattr(
        cli,
        "make_executor",
        lambda config, error_log: RequestExecutor(
            error_log=error_log, client=httpx.Client(transport=httpx.MockTransport(gateway))
        ),
    )


def test_cli_drawdown_exits_zero_on_success(config_file, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    gateway = FakeGateway(_routes())
    _patch_cli_executor(monkeypatch, gateway)

    assert cli.main(["drawdown", "--bank", "ktb", "--config", str(config_file)]) == 0
    assert len(gateway.requests) == 4


def test_cli_drawdown_application_error_exits_one(config_file, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    gateway = FakeGateway(_routes(**{"/installmentation": {"code": "E1001", "message": "Limit exceeded"}}))
    _patch_cli_executor(monkeypatch, gateway)

    assert cli.main(["drawdown", "--bank", "ktb", "--config", str(config_file)]) == 1
    assert len(gateway.requests) == 1
    logged = (tmp_path / "error_log.txt").read_text(encoding="utf-8")
    assert logged.count("Code E1001") == 1


def test_cli_drawdown_invalid_type_exits_one_without_calls(config_file, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    data = read_config(config_file)
    data["institutions"]["ktb"]["drawdown_type"] = "transfer"
    config_file.write_text(yaml.safe_dump(data), encoding="utf-8")
    gateway = FakeGateway(_routes())
    _patch_cli_executor(monkeypatch, gateway)

    assert cli.main(["drawdown", "--bank", "ktb", "--config", str(config_file)]) == 1
    assert gateway.requests == []
    assert "Invalid ktb.drawdown_type value: transfer" in (tmp_path / "error_log.txt").read_text(encoding="utf-8")


def test_cli_drawdown_timestamped_log_file(config_file, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    _patch_cli_executor(monkeypatch, FakeGateway(_routes()))

    assert cli.main(["drawdown", "--bank", "ktb", "--config", str(config_file), "--timestamped-log"]) == 0

    logs = list((tmp_path / "logs").glob("1640000240-*.log"))
    assert len(logs) == 1
    assert "Flow Execution Summary" in logs[0].read_text(encoding="utf-8")


def test_profile_without_drawdown_type_issues_no_calls(vb, make_executor, extractor):
    vb.drawdown_type = None
    gateway = FakeGateway(_routes())

    with pytest.raises(ConfigurationError, match="Missing vb.drawdown_type"):
        _orchestrator("vb", vb, make_executor(gateway), extractor).run()

    assert gateway.requests == []


def test_installmentation_takes_ccd_id_from_profile(vb, make_executor, extractor):
    vb.ccd_id = "ccd-42"
    gateway = FakeGateway(_routes())

    _orchestrator("vb", vb, make_executor(gateway), extractor).run()

    assert gateway.body(0)["ccdId"] == "ccd-42"
    assert "channelId" not in gateway.body(0)


def test_missing_ccd_id_issues_no_calls(vb, make_executor, extractor):
    vb.ccd_id = None
    gateway = FakeGateway(_routes())

    with pytest.raises(ConfigurationError, match="Missing vb.ccd_id"):
        _orchestrator("vb", vb, make_executor(gateway), extractor).run()

    assert gateway.requests == []


def test_cli_drawdown_without_drawdown_type_exits_one(config_file, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    data = read_config(config_file)
    del data["institutions"]["vb"]["drawdown_type"]
    config_file.write_text(yaml.safe_dump(data), encoding="utf-8")
    gateway = FakeGateway(_routes())
    _patch_cli_executor(monkeypatch, gateway)

    assert cli.main(["drawdown", "--bank", "vb", "--config", str(config_file)]) == 1
    assert gateway.requests == []
