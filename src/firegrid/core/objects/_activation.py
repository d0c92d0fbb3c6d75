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

"""Activation record model."""

from __future__ import (
    annotations,  # This is needed since SQLAlchemy does not support forward references yet
)

import enum
import time

import sqlalchemy
import sqlalchemy.orm

from ._base import Base

SCHEMA_VERSION = 1


class ActivationStatus(enum.StrEnum):
    STAGED = 'staged'
    ACTIVE = 'active'
    FAILED = 'failed'
    ROLLED_BACK = 'rolled_back'
    STOPPED = 'stopped'


class Activation(Base):
    """One stage/verify/activate attempt.

    ``payloads`` maps payload names (``ipv4``, ``ipv6``, ``tc``, ``ip``)
    to the rendered text; ``snapshot`` holds the live ``iptables-save``
    output per family taken before the swap.
    """

    __tablename__ = 'activations'

    id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer,
        primary_key=True,
        autoincrement=True,
    )
    schema_version: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer,
        default=SCHEMA_VERSION,
    )
    created: sqlalchemy.orm.Mapped[float] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Float,
        default=time.time,
    )
    digest: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(64),
        index=True,
    )
    status: sqlalchemy.orm.Mapped[ActivationStatus] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Enum(ActivationStatus, native_enum=False, length=16),
        default=ActivationStatus.STAGED,
        index=True,
    )
    source: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    staging_path: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    payloads: sqlalchemy.orm.Mapped[dict] = sqlalchemy.orm.mapped_column(
        sqlalchemy.JSON,
        default=dict,
    )
    snapshot: sqlalchemy.orm.Mapped[dict] = sqlalchemy.orm.mapped_column(
        sqlalchemy.JSON,
        default=dict,
    )
    message: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Text,
        default='',
    )

    def __repr__(self) -> str:
        return (
            f'<Activation id={self.id} status={self.status} '
            f'digest={(self.digest or "")[:12]}>'
        )
