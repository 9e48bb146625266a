from threading import Lock
from typing import Dict, List


class UserDirectory:
    # Usernames with at least one logged-in session, shared by every session thread
    def __init__(self):
        self.lock = Lock()  # guards sessions; every session thread logs in and out through here
        self.sessions: Dict[str, int] = {}   # username -> number of live sessions for it

    def add(self, username: str) -> None:
        ''' This function records one more logged-in session for username '''
        with self.lock:   # count and membership change together
            self.sessions[username] = self.sessions.get(username, 0) + 1

    def remove(self, username: str) -> None:
        ''' This function drops one session for username, forgetting the name when none remain '''
        with self.lock:
            count = self.sessions.get(username, 0) - 1
            if count > 0:
                self.sessions[username] = count
            else:
                self.sessions.pop(username, None)

    def users(self) -> List[str]:
        ''' This function returns the logged-in usernames in sorted order '''
        with self.lock:
            return sorted(self.sessions)

    def __contains__(self, username: str) -> bool:
        with self.lock:
            return username in self.sessions
