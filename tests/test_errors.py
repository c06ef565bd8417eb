"""Tests for core/errors.py."""

from infraphase.core.errors import (
    ConfigurationError,
    ExitCode,
    InfraphaseError,
    OutputRetrievalError,
    PermanentConfigurationError,
    PlanValidationError,
    ProvisioningError,
    ProvisioningTimeoutError,
    SecretPropagationError,
    TransientProvisioningError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)


class TestErrorTaxonomy:
    """Tests for the exception hierarchy and exit codes."""

    def test_task_errors_are_provisioning_errors(self):
        for cls in (
            PermanentConfigurationError,
            TransientProvisioningError,
            ProvisioningTimeoutError,
            OutputRetrievalError,
        ):
            assert issubclass(cls, ProvisioningError)

    def test_plan_validation_is_validation_error(self):
        assert issubclass(PlanValidationError, ValidationError)
        assert PlanValidationError("bad").exit_code == ExitCode.VALIDATION_ERROR

    def test_task_id_is_carried(self):
        err = ProvisioningTimeoutError("too slow", task_id="redis")
        assert err.task_id == "redis"
        assert err.message == "too slow"
        assert err.exit_code == ExitCode.PROVIDER_ERROR

    def test_secret_error_carries_name(self):
        err = SecretPropagationError("denied", secret_name="shop-redis-key")
        assert err.secret_name == "shop-redis-key"
        assert err.exit_code == ExitCode.PARTIAL_FAILURE

    def test_permanent_configuration_maps_to_config_exit(self):
        assert PermanentConfigurationError("x").exit_code == ExitCode.CONFIG_ERROR


class TestMainWithErrorHandling:
    """Tests for the CLI error-handling decorator."""

    def test_passes_through_return_value(self):
        @main_with_error_handling(log_errors=False)
        def command():
            return 0

        assert command() == 0

    def test_infraphase_error_uses_exit_code(self, capsys):
        @main_with_error_handling(log_errors=False)
        def command():
            raise ConfigurationError("missing plan", {"path": "plan.yaml"})

        assert command() == ExitCode.CONFIG_ERROR
        captured = capsys.readouterr()
        assert "missing plan (path=plan.yaml)" in captured.err
        assert captured.out == ""

    def test_keyboard_interrupt_returns_130(self):
        @main_with_error_handling(log_errors=False)
        def command():
            raise KeyboardInterrupt

        assert command() == 130

    def test_unexpected_error_returns_unknown(self):
        @main_with_error_handling()
        def command():
            raise RuntimeError("boom")

        assert command() == ExitCode.UNKNOWN_ERROR


class TestFormatErrorMessage:
    def test_without_details(self):
        assert format_error_message(InfraphaseError("plain")) == "plain"

    def test_with_details(self):
        err = InfraphaseError("bad plan", {"errors": "cycle", "phase": 2})
        assert format_error_message(err) == "bad plan (errors=cycle, phase=2)"
