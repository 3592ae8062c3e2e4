"""Stand-in for the ffmpeg binary used by the transcoder tests.

Copies the ``-i`` input to the last argument unchanged (``pipe:0``/``pipe:1``
mean stdin/stdout) after printing one status line to stderr. With
FFMPEG_STUB_FAIL set it prints that text to stderr and exits 3 instead.
"""

import os
import sys

CHUNK = 64 * 1024


def _copy(src, dst):
    while True:
        data = src.read1(CHUNK)
        if not data:
            break
        dst.write(data)
        dst.flush()


def main(argv):
    source = argv[argv.index("-i") + 1]
    target = argv[-1]

    sys.stderr.write("Input #0, matroska,webm, from 'stub':\n")
    sys.stderr.write("size=       0kB time=00:00:01.00 bitrate= 192.0kbits/s speed=1x\r")
    sys.stderr.flush()

    failure = os.environ.get("FFMPEG_STUB_FAIL")
    if failure:
        sys.stderr.write(failure + "\n")
        return 3

    src = sys.stdin.buffer if source == "pipe:0" else open(source, "rb")
    dst = sys.stdout.buffer if target == "pipe:1" else open(target, "wb")
    try:
        _copy(src, dst)
    finally:
        if src is not sys.stdin.buffer:
            src.close()
        if dst is not sys.stdout.buffer:
            dst.close()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
