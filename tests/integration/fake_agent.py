"""Stand-in for tabby-agent used by the integration tests.

Reads ``[id, {"func": ..., "args": [...]}]`` lines from stdin and answers on
stdout. Some replies are deliberately written in two pieces, or mixed with
garbage lines, to exercise the client's framing.
"""

import json
import sys
import time


def write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def send(frame_id: int, payload: object) -> None:
    write(json.dumps([frame_id, payload]) + "\n")


def send_split(frame_id: int, payload: object) -> None:
    line = json.dumps([frame_id, payload]) + "\n"
    half = len(line) // 2
    write(line[:half])
    time.sleep(0.02)
    write(line[half:])


def main() -> None:
    hanging: set[int] = set()

    while True:
        line = sys.stdin.readline()
        if not line:
            return

        frame_id, body = json.loads(line)
        func, args = body["func"], body["args"]
        print(f"fake agent got {func} (id={frame_id})", file=sys.stderr, flush=True)

        if func == "initialize":
            send(0, {"event": "statusChanged", "status": "ready"})
            send(frame_id, True)
        elif func == "getCompletions":
            write("this line is not json\n")
            send_split(frame_id, {"id": "cmpl-1", "choices": [{"index": 0, "text": "foo"}]})
        elif func == "requestAuthUrl":
            send(0, {"event": "authRequired"})
            send(frame_id, {"authUrl": "https://example.com/auth", "code": "abc"})
        elif func == "waitForAuthToken":
            send(0, {"event": "statusChanged", "status": "ready"})
            send(frame_id, None)
        elif func == "hang":
            hanging.add(frame_id)
        elif func == "cancelRequest":
            target = args[0]
            was_hanging = target in hanging
            hanging.discard(target)
            # Reply to the cancelled request anyway; the client must ignore it
            send(target, "too late")
            send(frame_id, was_hanging)
        elif func == "echo":
            send(frame_id, args)
        elif func == "exit":
            return
        else:
            send(frame_id, None)


if __name__ == "__main__":
    main()
