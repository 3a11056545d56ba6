"""GitHub Copilot CLI provider."""

from __future__ import annotations

from crewx.infra.providers.engine import BaseAIProvider
from crewx.models.provider import NO_ERROR, BuiltInProvider, ProviderError

PLANS_URL = "https://github.com/features/copilot/plans"


class CopilotProvider(BaseAIProvider):
    name = BuiltInProvider.COPILOT.value

    def get_cli_command(self) -> str:
        return "copilot"

    def get_default_args(self) -> list[str]:
        return []

    def get_execute_args(self) -> list[str]:
        return []

    def get_not_installed_message(self) -> str:
        return (
            "GitHub Copilot CLI is not installed. Please refer to "
            "https://docs.github.com/copilot/how-tos/set-up/install-copilot-cli to install it."
        )

    def parse_provider_error(self, stderr: str, stdout: str) -> ProviderError:
        # Quota and auth notices may land on either stream
        combined = stderr or stdout
        lowered = combined.lower()

        if "quota" in combined and "exceed" in combined:
            return ProviderError(
                error=True,
                message=f"Copilot quota exceeded. Please check your plan at {PLANS_URL} or try again later.",
            )
        if "quota_exceeded" in combined:
            return ProviderError(
                error=True,
                message=f"Copilot quota exceeded. Please check your plan at {PLANS_URL}.",
            )
        if "auth" in lowered or "login" in lowered:
            return ProviderError(
                error=True,
                message=(
                    "Copilot CLI authentication is required. "
                    "Please authenticate using the `copilot login` command."
                ),
            )

        stderr_lowered = stderr.lower()
        if stderr and ("unknown option" in stderr_lowered or "invalid option" in stderr_lowered):
            return ProviderError(error=True, message=stderr.split("\n")[0].strip() or "Invalid CLI option")

        # stdout is the answer itself and may mention networks freely
        if stderr and ("network" in stderr_lowered or "connection" in stderr_lowered):
            return ProviderError(
                error=True,
                message="Network connection error. Please check your internet connection and try again.",
            )

        if stderr and not stdout:
            return ProviderError(error=True, message=stderr)
        return NO_ERROR
