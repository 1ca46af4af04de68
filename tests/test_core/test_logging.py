"""Tests for loguru setup."""

import logging
from unittest.mock import patch

from loguru import logger

from jobstats.config import Settings
from jobstats.core.logging import get_logger, setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_stdlib_records_reach_loguru(self):
        """SQLAlchemy's stdlib logging should be routed through loguru."""
        with patch("jobstats.core.logging.get_settings", return_value=Settings(_env_file=None)):
            setup_logging()

        messages: list[str] = []
        sink_id = logger.add(messages.append, format="{message}")
        try:
            logging.getLogger("sqlalchemy.engine").warning("slow query on attempts")
        finally:
            logger.remove(sink_id)

        assert any("slow query on attempts" in m for m in messages)

    def test_get_logger_binds_name(self):
        records = []
        sink_id = logger.add(lambda m: records.append(m.record), format="{message}")
        try:
            get_logger("jobstats.listener").bind(job_uuid="u-1").warning("job_stats_job_not_found")
        finally:
            logger.remove(sink_id)

        assert records[0]["extra"] == {"name": "jobstats.listener", "job_uuid": "u-1"}
        assert records[0]["message"] == "job_stats_job_not_found"
