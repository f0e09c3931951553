"""
CELive: keeps Compiler Explorer output in sync with the code you are typing.

Every edit restarts a short debounce timer; when it fires, the current session
is sent twice, once to compile and once to compile and run. A newer request
always supersedes an older one of the same kind, so the views only ever show
results for the latest text. Closed sessions go to a small history that is
saved on exit and can be walked back with "Previous session".
"""

from celive_app import main


if __name__ == "__main__":
    main()
