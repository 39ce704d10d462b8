"""
Unit tests for the terminal front end.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console

from unimatch import cli
from unimatch.models.conversation import StartConversationResult, TurnResult
from unimatch.models.university import MatchResult, UniversityMatch
from unimatch.utils.errors import MatchingError


@pytest.fixture
def recorded_console(monkeypatch):
    console = Console(record=True, width=200)
    monkeypatch.setattr(cli, "console", console)
    return console


def _result(**overrides) -> MatchResult:
    data = {
        "matches": [
            UniversityMatch(
                rank=1,
                university="University of Melbourne",
                city="Melbourne",
                country="Australia",
                program="Master of IT",
                tuition={"amount": 48000, "currency": "AUD", "verified": True},
                category="TARGET",
                admission_chance=65,
                pr_pathway={"strength": 80},
            )
        ],
        "insights": ["📈 Many competitive matches."],
        "disclaimer": "Always confirm on official university website.",
        "generated_at": "2026-01-01T00:00:00+00:00",
    }
    data.update(overrides)
    return MatchResult(**data)


class TestAsk:
    """Test cases for answer prompting."""

    @patch("unimatch.cli.Prompt.ask", return_value="2")
    def test_number_selects_option(self, mock_ask, recorded_console):
        """Test that a number picks the matching quick reply."""
        assert cli.ask("Degree?", ["Bachelor's", "Master's"]) == "Master's"

    @patch("unimatch.cli.Prompt.ask", side_effect=["", "  Ireland "])
    def test_free_text_and_blank_retry(self, mock_ask, recorded_console):
        """Test that blank answers re-prompt and free text is returned trimmed."""
        assert cli.ask("Country?", []) == "Ireland"
        assert mock_ask.call_count == 2

    @patch("unimatch.cli.Prompt.ask", return_value="9")
    def test_out_of_range_number_is_free_text(self, mock_ask, recorded_console):
        """Test that a number outside the options is kept as typed."""
        assert cli.ask("GPA?", ["A", "B"]) == "9"


class TestRenderResult:
    """Test cases for result rendering."""

    def test_renders_table_insights_and_disclaimer(self, recorded_console):
        """Test that matches, insights and disclaimer are printed."""
        # Act
        cli.render_result(_result(cached=True))
        output = recorded_console.export_text()

        # Assert
        assert "University of Melbourne" in output
        assert "AUD 48,000 (verified)" in output
        assert "65%" in output
        assert "Many competitive matches" in output
        assert "(cached result)" in output
        assert "Always confirm on official university website." in output

    def test_empty_result_prints_no_table(self, recorded_console):
        """Test that an empty result prints only insights and disclaimer."""
        # Act
        cli.render_result(_result(matches=[], insights=["No matches found."]))
        output = recorded_console.export_text()

        # Assert
        assert "University Matches" not in output
        assert "No matches found." in output


class TestRun:
    """Test cases for the run loop."""

    def _coordinator(self):
        coordinator = MagicMock()
        coordinator.start_conversation.return_value = StartConversationResult(
            conversation_id="c" * 32, message="Which country?", options=["🇨🇦 Canada"]
        )
        coordinator.send_message.return_value = TurnResult(
            user_message_id="u", assistant_message_id="a", assistant_message="Perfect!", is_complete=True
        )
        coordinator.get_conversation.return_value = {"profileAccumulator": {"country": "Canada"}}
        coordinator.match_conversation = AsyncMock(return_value=_result())
        coordinator.find_matches_quick = AsyncMock(return_value=_result())
        coordinator.aclose = AsyncMock()
        return coordinator

    @pytest.mark.asyncio
    async def test_full_matching_path(self, recorded_console):
        """Test that the default path matches the finished conversation."""
        # Arrange
        coordinator = self._coordinator()
        args = cli.build_parser().parse_args(["--verify"])

        # Act
        with patch("unimatch.cli.UniMatchCoordinator.from_config", return_value=coordinator), patch(
            "unimatch.cli.Prompt.ask", return_value="1"
        ):
            code = await cli.run(args)

        # Assert
        assert code == 0
        coordinator.set_verification_enabled.assert_called_once_with(True)
        coordinator.send_message.assert_called_once_with("c" * 32, "🇨🇦 Canada")
        coordinator.match_conversation.assert_awaited_once_with("c" * 32)
        coordinator.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_quick_path(self, recorded_console):
        """Test that --quick matches the accumulated answers directly."""
        # Arrange
        coordinator = self._coordinator()
        args = cli.build_parser().parse_args(["--quick"])

        # Act
        with patch("unimatch.cli.UniMatchCoordinator.from_config", return_value=coordinator), patch(
            "unimatch.cli.Prompt.ask", return_value="Canada"
        ):
            code = await cli.run(args)

        # Assert
        assert code == 0
        coordinator.find_matches_quick.assert_awaited_once_with({"country": "Canada"})
        coordinator.match_conversation.assert_not_called()

    @pytest.mark.asyncio
    async def test_domain_error_returns_one(self, recorded_console):
        """Test that a domain error is printed and yields exit code 1."""
        # Arrange
        coordinator = self._coordinator()
        coordinator.find_matches_quick = AsyncMock(side_effect=MatchingError("Completion request failed: x"))
        args = cli.build_parser().parse_args(["--quick"])

        # Act
        with patch("unimatch.cli.UniMatchCoordinator.from_config", return_value=coordinator), patch(
            "unimatch.cli.Prompt.ask", return_value="Canada"
        ):
            code = await cli.run(args)

        # Assert
        assert code == 1
        assert "Completion request failed: x" in recorded_console.export_text()
        coordinator.aclose.assert_awaited_once()

    def test_keyboard_interrupt_exit_code(self, recorded_console, mocker):
        """Test that Ctrl+C exits with 130."""
        mocker.patch("unimatch.cli.run", new=MagicMock())
        mocker.patch("unimatch.cli.asyncio.run", side_effect=KeyboardInterrupt)

        assert cli.main([]) == 130
