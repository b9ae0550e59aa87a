UNLOCK_COST = 2
AD_REWARD = 3
MAX_ADS_PER_DAY = 10
