# Copyright 2020-present Kensho Technologies, LLC.
