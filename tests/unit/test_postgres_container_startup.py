"""
Unit tests for PostgreSQL testcontainer startup on hosts without docker.
"""

import pytest

from tests.conftest import start_postgres_container


@pytest.mark.unit
class TestStartPostgresContainer:
    """Docker failures turn into skips, never errors."""

    def test_constructor_failure_skips(self, mocker):
        """The container constructor contacts docker and may raise immediately."""
        module = mocker.Mock()
        module.PostgresContainer.side_effect = RuntimeError("Error while fetching server API version")

        with pytest.raises(pytest.skip.Exception, match="testcontainer unavailable"):
            start_postgres_container(module)

    def test_start_failure_skips(self, mocker):
        module = mocker.Mock()
        module.PostgresContainer.return_value.start.side_effect = RuntimeError("docker daemon not running")

        with pytest.raises(pytest.skip.Exception, match="docker daemon not running"):
            start_postgres_container(module)

    def test_started_container_is_returned(self, mocker):
        module = mocker.Mock()

        container = start_postgres_container(module)

        assert container is module.PostgresContainer.return_value
        container.start.assert_called_once_with()
        module.PostgresContainer.assert_called_once_with(image="postgres:17-alpine", driver="asyncpg")
