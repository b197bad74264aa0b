from dataclasses import dataclass, field
from inspect import iscoroutinefunction
from typing import Any

from apple_signin.models.errors import StrategyNotFoundError, StrategyRegistrationError
from apple_signin.strategies.base import BaseStrategy


@dataclass
class RegisteredStrategy:
    """A strategy together with the request options it was mounted with."""

    strategy: BaseStrategy
    options: dict[str, Any] = field(default_factory=dict)


class StrategyRegistry:
    """
    Manages the authentication strategies exposed under /auth/{provider}.

    One instance is created at application startup and kept on `app.state`.
    """

    def __init__(self) -> None:
        self._registered: dict[str, RegisteredStrategy] = {}

    def register(self, strategy: BaseStrategy, options: dict[str, Any] | None = None) -> None:
        """
        Registers a strategy under its provider name after validating it.

        Args:
            strategy: An instance of a class inheriting from BaseStrategy.
            options: Per-provider request options, e.g. `client_id` and `client_secret`
                overrides. They take precedence over the strategy's static configuration.

        Raises:
            StrategyRegistrationError: If the strategy is invalid or its name is taken.
        """
        self._validate_instance(strategy)
        self._validate_properties(strategy)
        self._validate_duplicate_name(strategy)

        self._registered[strategy.name] = RegisteredStrategy(strategy, dict(options or {}))

    def _validate_instance(self, strategy: Any) -> None:
        if not isinstance(strategy, BaseStrategy):
            raise StrategyRegistrationError(
                f"Provided object is not an instance of BaseStrategy: {type(strategy)}"
            )

    def _validate_properties(self, strategy: BaseStrategy) -> None:
        if not strategy.name or not isinstance(strategy.name, str):
            raise StrategyRegistrationError("Strategy must have a non-empty string 'name'.")
        for phase in ("handle_request", "handle_callback"):
            if not iscoroutinefunction(getattr(strategy, phase)):
                raise StrategyRegistrationError(
                    f"Strategy '{strategy.name}' must have an async '{phase}' method."
                )

    def _validate_duplicate_name(self, strategy: BaseStrategy) -> None:
        if strategy.name in self._registered:
            raise StrategyRegistrationError(
                f"Strategy with name '{strategy.name}' already registered."
            )

    def get(self, provider: str) -> RegisteredStrategy:
        """
        Retrieves a registered strategy by provider name.

        Raises:
            StrategyNotFoundError: If no strategy is registered under that name.
        """
        entry = self._registered.get(provider)
        if entry is None:
            raise StrategyNotFoundError(provider)
        return entry

    def get_provider_names(self) -> list[str]:
        return list(self._registered.keys())
