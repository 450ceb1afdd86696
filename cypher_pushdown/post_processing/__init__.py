# Copyright 2019-present Kensho Technologies, LLC.
from .result_binding import bind_row, bind_rows  # noqa
