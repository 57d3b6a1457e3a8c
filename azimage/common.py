#
# azimage/common.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Application scaffolding shared by azimage command-line tools:
argument parsing, logger setup, and exit-code handling.
'''
import inspect
import logging
import os
import sys
import traceback

import azimage
from azimage.base_defaults import (EXC_VALUE_DEFAULT,
                                   LOGGER_NAME_DEFAULT,
                                  )
from azimage.btypes import LogTo
from azimage.exceptions import ApplicationExit
from azimage.util import (ArgExplicit,
                          ArgumentParser,
                          expand_item_pformat,
                          log_level_normalize,
                         )

class Application():
    """
    Base class for azimage tools.

    A subclass adds its own constructor arguments and passes the rest up:
        def __init__(self, node='', **kwargs):
            super().__init__(**kwargs)
            self.node = node

    adds matching command-line flags:
        @classmethod
        def main_add_parser_args(cls, ap_parser):
            super().main_add_parser_args(ap_parser)
            ap_parser.add_argument('--node', ...)

    and does its work in main_execute(), which ends by raising
    ApplicationExit with the exit code.
    """
    def __init__(self,
                 args_explicit=None,
                 debug=0,
                 exc_value=EXC_VALUE_DEFAULT,
                 log_level=None,
                 log_to=None,
                 log_file=None,
                 log_fmt=None,
                 logger=None,
                 **kwargs):
        '''
        args_explicit: names of arguments given explicitly on the command line
        debug: extra verbosity beyond logger.debug() for checks like "self.debug > 0"
        exc_value: exception class raised for invalid constructor values
        logger: use this logger rather than creating one; log_* are then
                only used to configure the root handler
        '''
        if kwargs:
            raise TypeError("%s: unexpected keyword arguments %s" % (type(self).__name__, ','.join(sorted(kwargs.keys()))))
        self.args_explicit = set(args_explicit or set())
        self._args_saved = dict() # populated by main_app_setup()
        self.debug = debug
        self.exc_value = exc_value
        self._log_to = LogTo.coerce(log_to if log_to is not None else self.LOG_TO_DEFAULT, exc_value=exc_value, prefix='log_to')
        self._log_file = log_file
        self._log_level, self._logger = self._logger_create(log_level, logger,
                                                            log_to=self._log_to,
                                                            log_file=self._log_file,
                                                            log_fmt=log_fmt)

    LOGGER_NAME = LOGGER_NAME_DEFAULT

    LOG_FORMAT_SIMPLE = "%(message)s"
    LOG_FORMAT_LOC = "%(asctime)s %(levelname).3s %(name)s:%(module)s:%(funcName)s:%(lineno)s: %(message)s"

    # Subclasses pick one of the LOG_FORMAT_* values here
    LOG_FORMAT = LOG_FORMAT_SIMPLE

    LOG_LEVEL_DEFAULT = 'info'
    LOG_LEVEL_CHOICES = ('debug', 'info', 'warning', 'error', 'critical')

    LOG_TO_DEFAULT = LogTo.STDERR.value

    # Loggers that are too chatty at our default level
    NOISY_LOGGERS = (('azure.core.pipeline.policies.http_logging_policy', logging.WARNING),
                     ('azure.identity', logging.WARNING),
                     ('azure.identity._internal.decorators', logging.ERROR),
                    )

    @property
    def logger(self):
        return self._logger

    @property
    def log_level(self):
        return self._log_level

    @classmethod
    def _logger_create(cls, log_level, logger, log_to=None, log_file=None, log_fmt=None):
        '''
        Configure root logging and return (log_level, logger).
        '''
        log_fmt = log_fmt if log_fmt is not None else cls.LOG_FORMAT
        if log_file:
            log_dir = os.path.dirname(os.path.abspath(log_file))
            if not os.path.isdir(log_dir):
                raise ValueError("cannot log to %s: directory %s does not exist" % (log_file, log_dir))
            if not os.access(log_dir, os.W_OK):
                raise PermissionError("cannot log to %s: directory %s is not writeable" % (log_file, log_dir))
            logging.basicConfig(format=log_fmt, filename=log_file)
        else:
            stream = sys.stdout if LogTo(log_to or cls.LOG_TO_DEFAULT) == LogTo.STDOUT else sys.stderr
            logging.basicConfig(format=log_fmt, stream=stream)
        log_level = log_level_normalize(log_level if log_level is not None else cls.LOG_LEVEL_DEFAULT)
        if logger is None:
            logger = logging.getLogger(name=cls.LOGGER_NAME)
            logger.setLevel(log_level)
            for noisy_name, noisy_level in cls.NOISY_LOGGERS:
                logging.getLogger(name=noisy_name).setLevel(noisy_level)
        return (log_level, logger)

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        Add the flags every tool accepts. Subclasses extend this
        and call super() first.
        '''
        group = ap_parser.get_argument_group('common')
        group.add_argument('--debug', type=int, default=0, action=ArgExplicit,
                           help='extra debugging verbosity')
        group.add_argument('--log_level', type=str, default=cls.LOG_LEVEL_DEFAULT, choices=cls.LOG_LEVEL_CHOICES, action=ArgExplicit,
                           help='minimum level to log')
        group.add_argument('--log_to', type=str, default=cls.LOG_TO_DEFAULT, choices=LogTo.values(), action=ArgExplicit,
                           help='stream to log to')
        group.add_argument('--log_file', type=str, default=None, action=ArgExplicit,
                           help='log to this file rather than a stream')
        group.add_argument('--config_path', type=str, default=None, action=ArgExplicit,
                           help='YAML config file (default: $AZIMAGE_CONFIG)')

    @classmethod
    def main_handle_parser_args(cls, ap_args):
        '''
        Post-process the parsed argparse.Namespace in place.
        --config_path is consumed here rather than passed to the constructor.
        '''
        if getattr(ap_args, 'args_explicit', None) is None:
            ap_args.args_explicit = set()
        config_path = getattr(ap_args, 'config_path', None)
        if config_path:
            azimage.paths.reset(config_filename=config_path)
        if hasattr(ap_args, 'config_path'):
            del ap_args.config_path

    # Parsed arguments that go to _args_saved rather than the constructor
    ARGS_SAVE = ()

    @classmethod
    def args_process(cls, args_dict):
        '''
        Split parsed arguments into (constructor_args, saved_args).
        Any name listed in ARGS_SAVE by this class or a base class is saved.
        '''
        names = set()
        for kls in inspect.getmro(cls):
            names.update(getattr(kls, 'ARGS_SAVE', ()))
        saved = {k : args_dict.pop(k) for k in names if k in args_dict}
        return (args_dict, saved)

    @classmethod
    def main_app_setup(cls, cmd_args):
        '''
        Parse cmd_args and construct the application.
        Returns (app, debug, logger). Kept apart from main_with_args()
        so tests can build an app without the exit handling.
        '''
        ap_parser = ArgumentParser(allow_abbrev=False)
        cls.main_add_parser_args(ap_parser)
        ap_args = ap_parser.parse_args(args=cmd_args)
        cls.main_handle_parser_args(ap_args)
        args_dict, args_saved = cls.args_process(vars(ap_args))
        args_dict['exc_value'] = ApplicationExit
        app = cls(**args_dict)
        app._args_saved = args_saved
        return (app, app.debug, app.logger)

    @classmethod
    def main_with_args(cls, cmd_args):
        '''
        Command-line entry point. cmd_args is usually sys.argv[1:].
        Always leaves by SystemExit: ApplicationExit(0) or a falsy
        code exits 0; any other ApplicationExit exits 1 after printing
        a non-integer code; any other exception is logged and exits 1.
        '''
        debug = 1
        logger = None
        try:
            app, debug, logger = cls.main_app_setup(cmd_args)
            app.main_execute()
            logger.error("%s.main_execute returned without an exit code", type(app).__name__)
            raise ApplicationExit(1)
        except ApplicationExit as exc:
            if not isinstance(exc.code, (bool, int)):
                if logger is not None:
                    logger.error("%s", exc.code)
                else:
                    print(str(exc.code), file=sys.stderr)
            raise SystemExit(int(bool(exc.code))) from exc
        except SystemExit:
            raise
        except Exception as exc:
            if logger is None:
                print("%r\n%s" % (exc, traceback.format_exc()), file=sys.stderr, flush=True)
            elif debug > 0:
                logger.error("%r\n%s\n%s", exc, expand_item_pformat(exc), traceback.format_exc())
            else:
                logger.error("%s: %s", type(exc).__name__, exc)
        raise SystemExit(1)

    def main_execute(self):
        '''
        Do the work. Subclasses raise ApplicationExit when done.
        '''
        raise NotImplementedError("%s.main_execute" % type(self).__name__)
