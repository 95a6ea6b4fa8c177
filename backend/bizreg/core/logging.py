"""
Structured Logging & Run Context for bizreg

- run_id 기반 추적 (한 번의 수집 실행 단위)
- JSON 구조화 로그 (운영) / 텍스트 로그 (개발)

Usage:
    from bizreg.core.logging import RunContext, setup_logging

    setup_logging("INFO", json_output=True)
    run_id = RunContext.new_run("domestic")
    logger.info("...")  # run_id is attached by the formatter

Worker threads do not inherit context variables automatically; submit work
through contextvars.copy_context().run to keep the run_id on their records.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, UTC

# Context variables (thread-safe, async-safe)
_run_id_var: ContextVar[str] = ContextVar("run_id", default="")
_variant_var: ContextVar[str] = ContextVar("variant", default="")


class RunContext:
    """수집 실행 컨텍스트 관리"""

    @staticmethod
    def new_run(variant: str = "") -> str:
        """새 run_id 생성 및 설정"""
        run_id = str(uuid.uuid4())[:8]
        _run_id_var.set(run_id)
        _variant_var.set(variant)
        return run_id

    @staticmethod
    def get_run_id() -> str:
        """현재 run_id 반환"""
        return _run_id_var.get() or "no-run"

    @staticmethod
    def get_variant() -> str:
        return _variant_var.get()

    @staticmethod
    def clear() -> None:
        """컨텍스트 초기화"""
        _run_id_var.set("")
        _variant_var.set("")


class JSONLogFormatter(logging.Formatter):
    """JSON 형식 로그 포맷터"""

    def format(self, record: logging.LogRecord) -> str:
        """로그 레코드를 JSON 형식으로 변환"""
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "run_id": RunContext.get_run_id(),
            "component": record.name,
            "message": record.getMessage(),
        }

        variant = RunContext.get_variant()
        if variant:
            log_entry["variant"] = variant

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class RunContextFilter(logging.Filter):
    """Attach run_id to text log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = RunContext.get_run_id()
        return True


_setup_done = False


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    로깅 설정 (bizreg 로거 트리)

    Args:
        level: 로그 레벨 (DEBUG, INFO, WARNING, ERROR)
        json_output: JSON 형식 출력 여부
    """
    global _setup_done
    if _setup_done:
        return

    root_logger = logging.getLogger("bizreg")
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_output:
        handler.setFormatter(JSONLogFormatter())
    else:
        handler.addFilter(RunContextFilter())
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] [%(levelname)s] [%(run_id)s] [%(name)s] %(message)s"
        ))

    root_logger.addHandler(handler)

    # 다른 라이브러리 로그 레벨 조정
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _setup_done = True
