"""ジョブ投入スクリプト。

HTTP POST で /api/v1/jobs にジョブを送信する開発・運用用スクリプト。
--reset を付けるとジョブの進捗をクリアする。
"""

import argparse
import http.client
import json
import sys

JOB_TYPES = [
    "backfill",
    "bulk_import",
    "thread_repair",
    "user_sync",
    "channel_sync",
    "initial_setup",
]


def create_parser() -> argparse.ArgumentParser:
    """コマンドライン引数パーサーを作成する。"""
    parser = argparse.ArgumentParser(
        description="ジョブをサーバーに送信する",
    )
    parser.add_argument("job", choices=JOB_TYPES, help="ジョブ種別")
    parser.add_argument(
        "-H",
        "--host",
        default="localhost",
        help="サーバーホスト (デフォルト: localhost)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8080,
        help="サーバーポート (デフォルト: 8080)",
    )
    parser.add_argument(
        "-d",
        "--delay",
        type=int,
        default=0,
        help="遅延秒数 (デフォルト: 0)",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="ジョブを投入せず進捗をクリアする",
    )
    return parser


def post(host: str, port: int, path: str, payload: dict | None) -> tuple[bool, dict]:
    """JSON を POST してレスポンスを返す。

    Args:
        host: サーバーホスト
        port: サーバーポート
        path: リクエストパス
        payload: リクエストボディ

    Returns:
        (成功フラグ, レスポンス JSON) のタプル
    """
    try:
        conn = http.client.HTTPConnection(host, port, timeout=30)
        try:
            conn.request(
                "POST",
                path,
                body=json.dumps(payload or {}),
                headers={"Content-Type": "application/json"},
            )
            response = conn.getresponse()
            body = response.read().decode("utf-8")

            try:
                data = json.loads(body)
            except json.JSONDecodeError:
                return False, {"error": f"Invalid JSON response: {body}"}
            if response.status != 200:
                data.setdefault("error", f"{response.status} {response.reason}")
                return False, data
            return True, data
        finally:
            conn.close()
    except ConnectionRefusedError:
        return False, {"error": "Connection refused"}
    except TimeoutError:
        return False, {"error": "Connection timeout"}
    except OSError as e:
        return False, {"error": str(e)}


def main() -> int:
    """メインエントリーポイント。"""
    args = create_parser().parse_args()

    if args.reset:
        success, data = post(args.host, args.port, f"/api/v1/jobs/{args.job}/reset", None)
        message = data.get("message") if success else data.get("error")
    else:
        success, data = post(
            args.host, args.port, "/api/v1/jobs", {"type": args.job, "delay": args.delay}
        )
        message = (
            f"Event ID: {data.get('event_id')} (delay: {args.delay}s)"
            if success
            else data.get("error")
        )

    if not success:
        print(f"Error: {message}")
        return 1
    print(message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
