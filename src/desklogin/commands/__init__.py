"""Built-in CLI sub-commands for desklogin.

* :mod:`~desklogin.commands.session` -- ``get-user``, ``logout``,
  ``status`` and ``serve``, the commands backed by the login orchestrator.
* :mod:`~desklogin.commands.config` -- view and modify the config file.

Session commands are plain callback functions registered directly on the
root app; ``config`` is a :class:`typer.Typer` sub-application.
"""
