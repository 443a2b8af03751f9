"""
Unit tests for the fipe-sync command line
"""

import argparse
from unittest.mock import AsyncMock, patch

import pytest
from core.config import settings
from crawler.cli import build_options, build_parser, dispatch, main, parse_number_list
from crawler.orchestrator import CrawlSummary


class TestParseNumberList:
    """Test year/month list parsing"""

    @pytest.mark.parametrize("value, expected", [
        ("2023", [2023]),
        ("2020-2023", [2020, 2021, 2022, 2023]),
        ("1,3,6", [1, 3, 6]),
        ("6,1,3,1", [1, 3, 6]),
        ("1-3,2,12", [1, 2, 3, 12]),
    ])
    def test_valid(self, value, expected):
        assert parse_number_list(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "2023-2020", "1,,x", "2020-"])
    def test_invalid(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_number_list(value)


class TestParser:
    """Test argument wiring into crawl options"""

    def test_crawl_options(self):
        args = build_parser().parse_args(
            ["crawl", "-r", "328", "-b", "21,59", "-m", "4828", "-c", "-f", "--require-complete"]
        )

        options = build_options(args)

        assert options.reference_code == 328
        assert options.brand_codes == ["21", "59"]
        assert options.model_codes == ["4828"]
        assert options.classify is True
        assert options.force is True
        assert options.require_complete is True

    def test_years_and_months(self):
        args = build_parser().parse_args(["crawl", "-y", "2020-2021", "-M", "1,6"])

        options = build_options(args)

        assert options.years == [2020, 2021]
        assert options.months == [1, 6]
        assert options.reference_code is None

    def test_brand_allowlist_from_settings(self):
        args = build_parser().parse_args(["crawl"])

        with patch.object(settings, "CRAWL_BRAND_ALLOWLIST", "21, 59"):
            options = build_options(args)

        assert options.brand_codes == ["21", "59"]

    def test_explicit_brand_overrides_allowlist(self):
        args = build_parser().parse_args(["crawl", "-b", "21"])

        with patch.object(settings, "CRAWL_BRAND_ALLOWLIST", "59"):
            options = build_options(args)

        assert options.brand_codes == ["21"]

    def test_model_requires_brand(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["crawl", "-m", "4828"])
        assert exc_info.value.code == 2

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestDispatch:
    """Test command execution and exit status"""

    @pytest.mark.asyncio
    async def test_crawl_success(self, session_maker):
        args = build_parser().parse_args(["crawl", "-r", "328"])

        with patch("crawler.cli.run_crawl", AsyncMock(return_value=CrawlSummary())) as mock_run:
            status = await dispatch(args, session_maker)

        assert status == 0
        options = mock_run.await_args.args[0]
        assert options.reference_code == 328

    @pytest.mark.asyncio
    async def test_crawl_failure_exits_1(self, session_maker):
        args = build_parser().parse_args(["crawl"])

        with patch("crawler.cli.run_crawl", AsyncMock(side_effect=RuntimeError("upstream down"))):
            status = await dispatch(args, session_maker)

        assert status == 1

    @pytest.mark.asyncio
    async def test_status_prints_counts(self, session_maker, capsys):
        args = build_parser().parse_args(["status"])

        status = await dispatch(args, session_maker)

        assert status == 0
        output = capsys.readouterr().out
        assert "References: 0" in output
        assert "Prices: 0" in output
