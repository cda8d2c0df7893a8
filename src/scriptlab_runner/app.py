"""FastAPI application for the snippet runner."""

from __future__ import annotations

import logging
import sys
from typing import Any

from scriptlab.errors import OriginMismatch, PlaygroundError
from scriptlab.environment import Environment

from .config import RunnerSettings, load_settings
from .runner import SnippetRunner

logger = logging.getLogger("scriptlab_runner")


def create_app(settings: RunnerSettings | None = None, environment: Environment | None = None):
    try:
        from fastapi import Body, FastAPI, HTTPException
        from fastapi.responses import HTMLResponse, JSONResponse
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("請先安裝 runner 依賴：pip install -e .[runner]") from exc

    app = FastAPI(title="Script Lab Runner", version="0.1.0")
    runtime_settings = settings or load_settings()
    runner = SnippetRunner(runtime_settings, environment=environment)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "service": "scriptlab-runner",
            "version": "0.1.0",
            **runner.health_snapshot(),
        }

    @app.post("/render")
    def render(payload: Any = Body(...)):
        try:
            return HTMLResponse(runner.render(payload))
        except OriginMismatch as exc:
            return JSONResponse(status_code=403, content=exc.to_alert().to_dict())
        except PlaygroundError as exc:
            logger.warning("render 被拒絕：%s", exc)
            return JSONResponse(status_code=422, content=exc.to_alert().to_dict())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("render 發生未預期錯誤")
            raise HTTPException(status_code=500, detail="runner internal error") from exc

    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    try:
        import uvicorn

        settings = load_settings()
        app = create_app(settings)
        uvicorn.run(app, host=settings.host, port=settings.port)
    except Exception as exc:  # noqa: BLE001
        logger.exception("runner 啟動失敗")
        print(f"runner 啟動失敗：{exc}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
