"""hostcert: SSL key and certificate enrollment for hosts and devices."""
