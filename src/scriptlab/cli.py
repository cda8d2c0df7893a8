"""Command line interface for Script Lab."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import yaml

from .config import ConfigLoader
from .environment import load_environment_file
from .errors import PlaygroundError
from .logging_utils import setup_logger
from .models import Profile, Snippet
from .session import SessionStore
from .storage import resolve_data_dir
from .templates import (
    RoutingContext,
    assemble_outer_template,
    build_iframe_content,
    escape_for_embedding,
    render_outer_template,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scriptlab", description="Script Lab playground CLI")
    parser.add_argument("--data-dir", default=None, help="指定資料夾位置（預設 ~/.scriptlab）")
    parser.add_argument("--profile", default=None, help="指定使用者 profile（預設 default）")

    subparsers = parser.add_subparsers(dest="command")

    env_parser = subparsers.add_parser("env", help="環境設定")
    env_sub = env_parser.add_subparsers(dest="env_command")
    env_sub.add_parser("list", help="列出可用環境")
    env_show = env_sub.add_parser("show", help="顯示環境設定")
    env_show.add_argument("name", nargs="?", help="環境名稱（預設為目前環境）")

    settings_parser = subparsers.add_parser("settings", help="使用者設定")
    settings_sub = settings_parser.add_subparsers(dest="settings_command")
    settings_sub.add_parser("show", help="顯示目前設定")
    set_env = settings_sub.add_parser("set-env", help="切換環境")
    set_env.add_argument("name", help="環境名稱")
    set_theme = settings_sub.add_parser("set-theme", help="切換主題")
    set_theme.add_argument("theme", choices=["light", "dark"], help="主題")
    set_language = settings_sub.add_parser("set-language", help="設定介面語言")
    set_language.add_argument("language", help="語言代碼（例如 en-us）")

    snippet_parser = subparsers.add_parser("snippet", help="Snippet 管理")
    snippet_sub = snippet_parser.add_subparsers(dest="snippet_command")
    snippet_open = snippet_sub.add_parser("open", help="開啟 snippet 並記為 lastOpened")
    snippet_open.add_argument("path", help="snippet 檔案（YAML 或 JSON）")
    snippet_sub.add_parser("show", help="顯示目前 snippet")
    snippet_sub.add_parser("tabs", help="列出編輯分頁")

    render_parser = subparsers.add_parser("render", help="產生 runner 外層頁面")
    render_parser.add_argument("path", nargs="?", help="snippet 檔案（預設為 lastOpened）")
    render_parser.add_argument("--host", default=None, help="Office host（例如 EXCEL）")
    render_parser.add_argument("--platform", default=None, help="平台（例如 PC、Mac、OfficeOnline）")
    render_parser.add_argument("--environment-file", default=None, help="host 提供的 environment 檔")
    render_parser.add_argument("--return-url", default=None, help="返回編輯器的網址")
    render_parser.add_argument("--out", default=None, help="輸出檔案（預設輸出到 stdout）")

    config_parser = subparsers.add_parser("config", help="設定檔")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_show = config_sub.add_parser("show", help="顯示合併後設定")
    config_show.add_argument("--sources", action="store_true", help="顯示每個設定的來源")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    data_dir = Path(args.data_dir).expanduser() if args.data_dir else resolve_data_dir()
    logger = setup_logger("scriptlab", data_dir / "logs")

    try:
        loader = ConfigLoader(data_dir=data_dir)
        resolution = loader.resolve()
        store = SessionStore.from_config(
            resolution.effective,
            data_dir=data_dir,
            profile=Profile(login=args.profile) if args.profile else None,
        )
        store.load()

        if args.command == "env":
            _handle_env(store, args)
        elif args.command == "settings":
            _handle_settings(store, args)
        elif args.command == "snippet":
            _handle_snippet(store, args)
        elif args.command == "render":
            _handle_render(store, args)
        elif args.command == "config":
            _handle_config(resolution, args)
        else:
            parser.print_help()
    except PlaygroundError as exc:
        logger.warning("%s：%s", type(exc).__name__, exc)
        alert = exc.to_alert()
        print(f"{alert.title}：{alert.message}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:  # noqa: BLE001
        logger.error("執行失敗：%s", exc, exc_info=True)
        print("發生錯誤，請查看 logs/process.log 取得詳細資訊。", file=sys.stderr)
        sys.exit(1)


def _handle_env(store: SessionStore, args: argparse.Namespace) -> None:
    if args.env_command == "list":
        current = store.settings.env
        for name in store.registry.names():
            marker = " *" if name == current else ""
            print(f"{name}{marker}")
        return
    if args.env_command == "show":
        config = store.registry.get(args.name or store.settings.env)
        print(yaml.safe_dump(config.to_dict(), allow_unicode=True, sort_keys=False))
        return
    raise ValueError("請指定環境指令")


def _handle_settings(store: SessionStore, args: argparse.Namespace) -> None:
    if args.settings_command == "show":
        settings = store.settings
        print(f"環境：{settings.env}")
        print(f"主題：{'dark' if settings.theme else 'light'}")
        print(f"語言：{settings.language}")
        print(f"Profile：{settings.profile.key}")
        print(f"Handshake 逾時：{store.handshake_timeout_s:g} 秒")
        last_opened = settings.last_opened
        print(f"最近開啟：{(last_opened.name or '(未命名)') if last_opened else '（無）'}")
        return
    if args.settings_command == "set-env":
        store.switch_environment(args.name)
    elif args.settings_command == "set-theme":
        store.set_theme(args.theme == "dark")
    elif args.settings_command == "set-language":
        store.set_language(args.language)
    else:
        raise ValueError("請指定設定指令")
    store.save()
    print("已更新設定")


def _handle_snippet(store: SessionStore, args: argparse.Namespace) -> None:
    if args.snippet_command == "open":
        snippet = store.open(_read_snippet(Path(args.path)))
        store.save()
        print(f"已開啟 snippet：{snippet.name or '(未命名)'}")
        return
    if args.snippet_command == "show":
        snippet = _require_snippet(store)
        print(yaml.safe_dump(snippet.to_dict(), allow_unicode=True, sort_keys=False))
        return
    if args.snippet_command == "tabs":
        _require_snippet(store)
        for tab in store.tabs():
            size = len(tab.content or "")
            print(f"{tab.name}｜{tab.language or '-'}｜{size} chars")
        return
    raise ValueError("請指定 snippet 指令")


def _handle_render(store: SessionStore, args: argparse.Namespace) -> None:
    snippet = _read_snippet(Path(args.path)) if args.path else _require_snippet(store)
    if args.environment_file:
        environment = load_environment_file(Path(args.environment_file).expanduser())
    else:
        environment = store.registry.environment(store.settings.env)
    routing = RoutingContext(
        iframe_content=escape_for_embedding(build_iframe_content(snippet)),
        return_url=args.return_url,
        host=args.host,
        platform=args.platform,
    )
    document = render_outer_template(assemble_outer_template(snippet, environment, routing))
    if args.out:
        out_path = Path(args.out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(document, encoding="utf-8")
        print(f"已輸出：{out_path}")
        return
    print(document)


def _handle_config(resolution, args: argparse.Namespace) -> None:
    if args.config_command == "show":
        data = resolution.sources if args.sources else resolution.effective
        print(yaml.safe_dump(data, allow_unicode=True, sort_keys=False))
        return
    raise ValueError("請指定設定指令")


def _read_snippet(path: Path) -> Snippet:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ValueError(f"讀取 snippet 失敗：{path}") from exc
    return Snippet.from_dict(raw or {}).validate()


def _require_snippet(store: SessionStore) -> Snippet:
    snippet = store.snippet
    if snippet is None:
        raise PlaygroundError("尚未開啟任何 snippet，請先執行 scriptlab snippet open")
    return snippet


if __name__ == "__main__":
    main()
