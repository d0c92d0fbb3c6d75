# Copyright (C) 2026 Linuxfabrik <info@linuxfabrik.ch>
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# On Debian systems, the complete text of the GNU General Public License
# version 2 can be found in /usr/share/common-licenses/GPL-2.
#
# SPDX-License-Identifier: GPL-2.0-or-later

import contextlib
import logging
import pathlib

import sqlalchemy
import sqlalchemy.orm

from . import objects

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Persistent store of activation records.

    Only this store survives between runs; everything a compile pass
    needs lives in its CompileContext.
    """

    def __init__(self, connection_string='sqlite:///:memory:'):
        self.engine = sqlalchemy.create_engine(connection_string, echo=False)
        self._session_factory = sqlalchemy.orm.sessionmaker(
            self.engine, expire_on_commit=False
        )
        objects.enable_sqlite_fks(self.engine)
        objects.Base.metadata.create_all(self.engine)

    @classmethod
    def from_path(cls, path):
        """Open (and create, if needed) the SQLite store at *path*."""
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug('Opening state database %s', path)
        return cls(f'sqlite:///{path}')

    @contextlib.contextmanager
    def session(self):
        """Create a new database session. The transaction is committed when the contextmanager exits and rolled back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def add_activation(self, **values):
        with self.session() as session:
            record = objects.Activation(**values)
            session.add(record)
            session.flush()
            logger.debug('Recorded %r', record)
            return record.id

    def get_activation(self, activation_id):
        with self.session() as session:
            return session.get(objects.Activation, activation_id)

    def set_status(self, activation_id, status, message=None, **values):
        """Update the status (and optionally other columns) of a record."""
        with self.session() as session:
            record = session.get(objects.Activation, activation_id)
            if record is None:
                raise KeyError(f'no activation record {activation_id}')
            logger.debug(
                'Activation %d: %s -> %s', activation_id, record.status, status
            )
            record.status = status
            if message is not None:
                record.message = message
            for key, value in values.items():
                setattr(record, key, value)
            return record

    def get_active(self):
        """Return the currently active record or None."""
        with self.session() as session:
            return session.scalars(
                sqlalchemy.select(objects.Activation)
                .where(objects.Activation.status == objects.ActivationStatus.ACTIVE)
                .order_by(objects.Activation.id.desc())
                .limit(1)
            ).first()

    def demote_active(self, status=objects.ActivationStatus.STOPPED, keep=None):
        """Move every active record except *keep* to *status*."""
        with self.session() as session:
            records = session.scalars(
                sqlalchemy.select(objects.Activation).where(
                    objects.Activation.status == objects.ActivationStatus.ACTIVE
                )
            ).all()
            for record in records:
                if record.id != keep:
                    record.status = status

    def history(self, limit=20):
        with self.session() as session:
            return list(
                session.scalars(
                    sqlalchemy.select(objects.Activation)
                    .order_by(objects.Activation.id.desc())
                    .limit(limit)
                ).all()
            )
