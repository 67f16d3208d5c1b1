from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QIntValidator
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QComboBox,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSplitter,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from ..config.settings import Settings
from ..models import DEFAULT_HTTP_PORT, DEFAULT_HTTPS_PORT, Config, ServerState
from ..panel import ControlPanel
from ..rpc import CommandInvoker
from .logging import QtLogHandler
from .runtime import LoopThread, QtDirectoryPicker, StateBridge

logger = logging.getLogger(__name__)


class LogConsole(QTextEdit):
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setReadOnly(True)
        self.setLineWrapMode(QTextEdit.LineWrapMode.NoWrap)

    def append_message(self, level: int, message: str) -> None:
        color = {
            logging.DEBUG: "#888888",
            logging.INFO: "#1c6fbb",
            logging.WARNING: "#d17c00",
            logging.ERROR: "#b00020",
            logging.CRITICAL: "#7f0000",
        }.get(level, "#333333")
        self.append(f'<span style="color:{color}">{message}</span>')
        self.verticalScrollBar().setValue(self.verticalScrollBar().maximum())


class ServerConfigWidget(QGroupBox):
    def __init__(self, ip_choices: list[str], parent: Optional[QWidget] = None) -> None:
        super().__init__("Server", parent)
        form = QFormLayout()

        self.ip_combo = QComboBox()
        self.ip_combo.setEditable(True)
        self.ip_combo.addItems(ip_choices)
        self.ip_combo.setCurrentIndex(-1)
        self.ip_combo.lineEdit().setPlaceholderText("*")
        self.ip_combo.setInsertPolicy(QComboBox.InsertPolicy.NoInsert)

        self.port_edit = QLineEdit()
        self.port_edit.setValidator(QIntValidator(0, 65535))
        self.port_edit.setPlaceholderText(str(DEFAULT_HTTP_PORT))

        root_row = QHBoxLayout()
        self.root_edit = QLineEdit()
        self.root_edit.setReadOnly(True)
        self.browse_button = QPushButton("Browse")
        root_row.addWidget(self.root_edit, 4)
        root_row.addWidget(self.browse_button, 1)

        self.tls_checkbox = QCheckBox("Serve over HTTPS")

        form.addRow("IP", self.ip_combo)
        form.addRow("Port", self.port_edit)
        form.addRow("Directory", root_row)
        form.addRow(self.tls_checkbox)
        self.setLayout(form)

    def populate(self, config: Config) -> None:
        ip = config.ip or ""
        if self.ip_combo.currentText() != ip:
            self.ip_combo.blockSignals(True)
            self.ip_combo.setEditText(ip)
            self.ip_combo.blockSignals(False)
        port = "" if config.port is None else str(config.port)
        if self.port_edit.text() != port:
            self.port_edit.setText(port)
        self.port_edit.setPlaceholderText(str(DEFAULT_HTTPS_PORT if config.enable_tls else DEFAULT_HTTP_PORT))
        self.root_edit.setText(config.root or "")
        self.tls_checkbox.blockSignals(True)
        self.tls_checkbox.setChecked(bool(config.enable_tls))
        self.tls_checkbox.blockSignals(False)

    def current_port(self) -> Optional[int]:
        text = self.port_edit.text().strip()
        return int(text) if text else None


class AuthWidget(QGroupBox):
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__("Login", parent)
        form = QFormLayout()

        self.user_edit = QLineEdit()
        self.password_edit = QLineEdit()
        self.password_edit.setEchoMode(QLineEdit.EchoMode.Password)
        self.show_password_checkbox = QCheckBox("Show password")
        self.login_checkbox = QCheckBox("Require login")

        form.addRow("User", self.user_edit)
        form.addRow("Password", self.password_edit)
        form.addRow("", self.show_password_checkbox)
        form.addRow(self.login_checkbox)
        self.setLayout(form)

        self.show_password_checkbox.toggled.connect(self._toggle_password_visibility)

    def _toggle_password_visibility(self, checked: bool) -> None:
        self.password_edit.setEchoMode(QLineEdit.EchoMode.Normal if checked else QLineEdit.EchoMode.Password)

    def populate(self, username: str, password: str, enabled: bool) -> None:
        if self.user_edit.text() != username:
            self.user_edit.setText(username)
        if self.password_edit.text() != password:
            self.password_edit.setText(password)
        self.set_enabled_checked(enabled)

    def set_enabled_checked(self, enabled: bool) -> None:
        self.login_checkbox.blockSignals(True)
        self.login_checkbox.setChecked(enabled)
        self.login_checkbox.blockSignals(False)


class ServerControlWidget(QWidget):
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        layout = QHBoxLayout()
        self.status_label = QLabel("Stopped")
        self.toggle_button = QPushButton("Start")
        layout.addWidget(self.status_label, 1)
        layout.addWidget(self.toggle_button, 0, Qt.AlignmentFlag.AlignRight)
        self.setLayout(layout)

    def set_state(self, state: ServerState) -> None:
        if state.pending:
            self.status_label.setText("Processing…")
        else:
            self.status_label.setText("Running" if state.running else "Stopped")
        self.toggle_button.setText("Stop" if state.running else "Start")
        self.toggle_button.setEnabled(not state.pending)


class ControlPanelWindow(QMainWindow):
    def __init__(self, panel: ControlPanel, settings: Settings) -> None:
        super().__init__()
        self.setWindowTitle("DAV Control Panel")
        self.resize(640, 520)

        self._panel = panel
        self._runtime = LoopThread(panel)
        self._bridge = StateBridge(self)
        self._picker = QtDirectoryPicker(self)
        self._dialog_open = False

        self.log_console = LogConsole()
        self.log_handler = QtLogHandler()
        self.log_handler.emitter.message.connect(self.log_console.append_message)
        logging.getLogger().addHandler(self.log_handler)

        self.config_widget = ServerConfigWidget(settings.ip_choices)
        self.auth_widget = AuthWidget()
        self.control_widget = ServerControlWidget()

        upper = QWidget()
        upper_layout = QVBoxLayout(upper)
        upper_layout.addWidget(self.config_widget)
        upper_layout.addWidget(self.auth_widget)
        upper_layout.addWidget(self.control_widget)

        splitter = QSplitter(Qt.Orientation.Vertical)
        splitter.addWidget(upper)
        splitter.addWidget(self.log_console)
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 1)
        self.setCentralWidget(splitter)

        self._bridge.config_changed.connect(self._handle_config)
        self._bridge.state_changed.connect(self._handle_state)
        self._bridge.attach(panel)

        self.config_widget.ip_combo.currentTextChanged.connect(self._handle_ip_edited)
        self.config_widget.port_edit.textEdited.connect(self._handle_port_edited)
        self.config_widget.browse_button.clicked.connect(self._handle_browse)
        self.config_widget.tls_checkbox.toggled.connect(self._handle_tls_toggled)
        self.auth_widget.user_edit.textEdited.connect(self._handle_credentials_edited)
        self.auth_widget.password_edit.textEdited.connect(self._handle_credentials_edited)
        self.auth_widget.login_checkbox.toggled.connect(self._handle_login_toggled)
        self.control_widget.toggle_button.clicked.connect(self._handle_toggle_server)

        self._handle_config(panel.config)
        self._handle_state(panel.state)
        self._runtime.start()

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self._bridge.detach()
        self._runtime.stop()
        self.log_handler.emitter.message.disconnect(self.log_console.append_message)
        logging.getLogger().removeHandler(self.log_handler)
        super().closeEvent(event)

    # region edits
    def _handle_ip_edited(self, text: str) -> None:
        self._runtime.call(self._panel.set_ip, text)

    def _handle_port_edited(self, _: str) -> None:
        self._runtime.call(self._panel.set_port, self.config_widget.current_port())

    def _handle_browse(self) -> None:
        self._runtime.submit(lambda: self._panel.browse_root(self._picker))

    def _handle_tls_toggled(self, checked: bool) -> None:
        self._runtime.call(self._panel.set_tls_enabled, checked)

    def _handle_credentials_edited(self, _: str) -> None:
        self._runtime.call(
            self._panel.set_credentials,
            self.auth_widget.user_edit.text(),
            self.auth_widget.password_edit.text(),
        )

    def _handle_login_toggled(self, checked: bool) -> None:
        self._runtime.call(self._panel.set_auth_enabled, checked)

    def _handle_toggle_server(self) -> None:
        self._runtime.submit(self._panel.toggle_server)

    # endregion

    # region state display
    def _handle_config(self, config: Config) -> None:
        self.config_widget.populate(config)
        self.auth_widget.populate(self._panel.username, self._panel.password, config.auth is not None)

    def _handle_state(self, state: ServerState) -> None:
        self.control_widget.set_state(state)
        self.auth_widget.set_enabled_checked(self._panel.config.auth is not None)
        if self._dialog_open:
            return
        if state.last_warning is not None:
            self._show_dialog(QMessageBox.Icon.Warning, "Warning", str(state.last_warning))
        elif state.last_error is not None:
            self._show_dialog(QMessageBox.Icon.Critical, "Error", str(state.last_error))

    def _show_dialog(self, icon: QMessageBox.Icon, title: str, message: str) -> None:
        self._dialog_open = True
        try:
            box = QMessageBox(icon, title, message, QMessageBox.StandardButton.Ok, self)
            box.exec()
        finally:
            self._dialog_open = False
        self._runtime.call(self._panel.acknowledge)

    # endregion


def main(settings: Settings, invoker: CommandInvoker) -> None:
    import sys

    app = QApplication(sys.argv)
    panel = ControlPanel.from_settings(settings, invoker)
    window = ControlPanelWindow(panel, settings)
    window.show()
    sys.exit(app.exec())
