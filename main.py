from fastapi import FastAPI
import os
from fastapi.middleware.cors import CORSMiddleware

import uvicorn

from iconrender.api.icon_routes import router as icon_router
from iconrender.services.render_config import RenderConfig, default_icon_size


app = FastAPI(title="Icon Render API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r".*",
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(icon_router)


# 轻量健康检查
@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def _report_render_config():
    try:
        config = RenderConfig.from_env()
        size = default_icon_size()
    except ValueError as exc:
        # 不阻断服务启动，但打印警告以便诊断
        print("[startup] 渲染配置无效:", exc)
        return
    print(
        f"[startup] icon size={size} shape={config.icon_shape} shadows={config.shadows_enabled} "
        f"mono={config.mono_icons_enabled} shrink={config.shrink_non_adaptive_icons}"
    )


if __name__ == "__main__":
    host = os.environ.get("ICONRENDER_HOST", "0.0.0.0")
    try:
        port = int(os.environ.get("ICONRENDER_PORT", "8000"))
    except ValueError:
        port = 8000
    print(f"[boot] Icon Render API 即将启动: http://localhost:{port}")
    uvicorn.run(app, host=host, port=port)
