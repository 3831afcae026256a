import argparse
import logging
import queue
import tkinter as tk
from tkinter.scrolledtext import ScrolledText

import config
from client import ChatClient
from clienthandler import LOGIN_SUCCESS, LOGIN_FAILED

logger = logging.getLogger(__name__)

SERVER_FULL = "SERVER_FULL"
MAX_USERNAME_LENGTH = 15


def validate_login(username, password):
    """Return an error string for bad input, or None when it can be sent."""
    if not username or len(username) > MAX_USERNAME_LENGTH or ":" in username:
        return "Invalid username"
    if not password:
        return "Please enter a password"
    return None


########################################################################
# Login Frame
########################################################################
class LoginFrame(tk.Frame):
    def __init__(self, master, login_callback):
        super().__init__(master)
        self.login_callback = login_callback

        self.header = tk.Label(self, text='Chat Room', font=('Helvetica', 24))
        self.header.pack(pady=10)

        # Username label and entry
        self.username_label = tk.Label(self, text="Nickname:")
        self.username_label.pack(pady=(10, 0))
        self.username_entry = tk.Entry(self)
        self.username_entry.pack(pady=(0, 10), ipadx=50)
        self.username_entry.bind("<Return>", self.attempt_login)

        # Password label and entry
        self.password_label = tk.Label(self, text="Password:")
        self.password_label.pack(pady=(10, 0))
        self.password_entry = tk.Entry(self, show="*")
        self.password_entry.pack(pady=(0, 10), ipadx=50)
        self.password_entry.bind("<Return>", self.attempt_login)

        self.connect_button = tk.Button(self, text="Connect", width=10, command=self.attempt_login)
        self.connect_button.pack(pady=10)

        # Error message label
        self.error_label = tk.Label(self, text="", fg="red")
        self.error_label.pack(pady=5)

    def attempt_login(self, event=None):
        username = self.username_entry.get().strip()
        password = self.password_entry.get().strip()
        error = validate_login(username, password)
        if error:
            self.set_error(error)
            return
        self.set_error("")
        self.login_callback(username, password)

    def set_error(self, message):
        self.error_label.config(text=message)


########################################################################
# Chat Frame (after login succeeds)
########################################################################
class ChatFrame(tk.Frame):
    def __init__(self, master, send_callback, leave_callback):
        super().__init__(master)
        self.send_callback = send_callback

        self.info_label = tk.Label(self, text="")
        self.info_label.pack(padx=10, pady=(10, 0), anchor="w")

        self.chat_display = ScrolledText(self, state='disabled', wrap='none', width=92, height=24)
        self.chat_display.pack(padx=10, pady=10, fill=tk.BOTH, expand=True)

        # Frame to hold the message entry and buttons
        self.input_frame = tk.Frame(self)
        self.input_frame.pack(fill=tk.X, padx=10, pady=(0, 10))
        self.message_entry = tk.Entry(self.input_frame, width=70)
        self.message_entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.message_entry.bind("<Return>", self.send_message)
        self.send_button = tk.Button(self.input_frame, text="Send", command=self.send_message)
        self.send_button.pack(side=tk.LEFT, padx=(5, 0))
        self.leave_button = tk.Button(self.input_frame, text="Leave", command=leave_callback)
        self.leave_button.pack(side=tk.LEFT, padx=(5, 0))

    def set_info(self, text):
        self.info_label.config(text=text)

    def append_message(self, message):
        self.chat_display.configure(state='normal')
        self.chat_display.insert(tk.END, message + "\n")
        self.chat_display.configure(state='disabled')
        self.chat_display.yview(tk.END)

    def send_message(self, event=None):
        message = self.message_entry.get()
        if message.strip():
            self.send_callback(message)
            self.message_entry.delete(0, tk.END)


########################################################################
# Main Client Application Class
########################################################################
class ClientApp:
    def __init__(self, master, host=config.CLIENT_HOST, port=config.PORT):
        self.master = master
        self.host = host
        self.port = port
        master.title("Chatting Application")

        self.client = None
        self.nickname = ""
        # ChatClient callbacks run on its thread; Tk is only touched from poll_queue
        self.msg_queue = queue.Queue()

        self.login_frame = LoginFrame(master, self.do_login)
        self.login_frame.pack(fill="both", expand=True)
        # Chat frame will be created after successful login.
        self.chat_frame = None

        self.master.after(100, self.poll_queue)

    def do_login(self, username, password):
        self.nickname = username
        # tag events with their client so leftovers from a dropped one are skipped
        client = ChatClient(
            lambda message: self.msg_queue.put((client, "login", message)),
            lambda error: self.msg_queue.put((client, "error", error)),
            host=self.host, port=self.port,
        )
        self.client = client
        client.start(username, password)

    def handle_login_result(self, message):
        if message == LOGIN_SUCCESS:
            self.show_chat_frame()
        elif message == LOGIN_FAILED:
            self.drop_client()
            self.login_frame.set_error("Invalid credentials")
        elif message == SERVER_FULL:
            self.drop_client()
            self.login_frame.set_error("Server is full")

    def drop_client(self):
        # the hang-up that follows a refused login is not an error worth showing
        if self.client:
            self.client.stop()
            self.client = None

    def show_chat_frame(self):
        self.login_frame.pack_forget()
        self.chat_frame = ChatFrame(self.master, self.send_message, self.leave)
        self.chat_frame.set_info(f"Connected as {self.nickname} on Port {self.port}")
        self.chat_frame.pack(fill="both", expand=True)
        # from now on every message goes to the transcript
        client = self.client
        client.set_message_listener(lambda message: self.msg_queue.put((client, "chat", message)))

    def send_message(self, message):
        if self.client:
            self.client.send_message(f"{self.nickname}: {message}")

    def handle_error(self, error):
        logger.warning("Connection error: %s", error)
        if self.chat_frame:
            self.chat_frame.append_message("Disconnected.")
        else:
            self.login_frame.set_error("Connection failed")

    def poll_queue(self):
        try:
            while True:
                client, kind, payload = self.msg_queue.get_nowait()
                if client is None or client is not self.client:
                    # left over from a client we already stopped
                    continue
                if kind == "login" and not self.chat_frame:
                    self.handle_login_result(payload)
                elif kind in ("login", "chat") and self.chat_frame:
                    self.chat_frame.append_message(payload)
                elif kind == "error":
                    self.handle_error(payload)
        except queue.Empty:
            pass
        self.master.after(100, self.poll_queue)

    def leave(self):
        self.drop_client()
        if self.chat_frame:
            self.chat_frame.destroy()
            self.chat_frame = None
        self.login_frame.pack(fill="both", expand=True)

    def close(self):
        if self.client:
            self.client.stop()
        self.master.destroy()


########################################################################
# Main entry point
########################################################################
def main(argv=None):
    parser = argparse.ArgumentParser(description="Chat room client.")
    parser.add_argument("--host", default=config.CLIENT_HOST, help="Server hostname or IP")
    parser.add_argument("--port", type=int, default=config.PORT, help="Port number")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL.upper(), format=config.LOG_FORMAT)

    root = tk.Tk()
    app = ClientApp(root, host=args.host, port=args.port)
    root.protocol("WM_DELETE_WINDOW", app.close)
    root.mainloop()


if __name__ == "__main__":
    main()
