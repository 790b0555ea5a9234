"""Configuration parsing helpers."""

from sf_common.config.env import parse_bool_env, parse_int_list

__all__ = ["parse_bool_env", "parse_int_list"]
